"""Template engine for request templates.

Placeholders look like ``{{data.user.id}}`` or ``{{env.API_KEY}}``. A
trailing ``?`` marks a variable optional (``{{data.page?}}``): when it is
absent it renders as an empty string instead of failing the render.

Rendering is all-or-nothing. Any failure yields a result with
``success=False``, an error message and an empty ``result``; the engine never
returns a partially substituted string.
"""

from __future__ import annotations

import json
import logging
import re
from collections.abc import Mapping, Sequence
from typing import Any

from ..errors import ErrorCode, TemplateError
from ..logging_config import get_logger
from ..models import (
    TemplateContext,
    TemplateRenderResult,
    TemplateVariable,
    ValidationIssue,
    ValidationResult,
)

NAMESPACES = ("data", "env")

_PLACEHOLDER = re.compile(r"\{\{(.*?)\}\}", re.DOTALL)
_SEGMENT = re.compile(r"^(?:[A-Za-z_][A-Za-z0-9_]*|\d+)$")

# Sentinel for "path did not resolve"; None in the data counts as missing too.
_MISSING = object()


class TemplateEngine:
    """Renders, validates and inspects request templates.

    The engine is stateless: it caches nothing between calls and never
    mutates the template or the context.

    Example:
        engine = TemplateEngine()
        context = TemplateContext(data={"city": "Oslo"}, env={"API_KEY": "k"})

        result = engine.render("/weather?q={{data.city}}&key={{env.API_KEY}}", context)
        if result.success:
            send(result.result)
    """

    def __init__(self, logger: logging.Logger | None = None):
        self.logger = logger or get_logger("templates")

    def render(self, template: str, context: TemplateContext) -> TemplateRenderResult:
        """Render a template string against a context.

        Args:
            template: String containing zero or more placeholders
            context: Data and environment values to substitute

        Returns:
            TemplateRenderResult; never raises for template problems.
        """
        try:
            rendered, used = self._render(template, context)
        except TemplateError as e:
            self.logger.debug("Template render failed: %s", e.message)
            return TemplateRenderResult(result="", success=False, error=e.message)

        return TemplateRenderResult(result=rendered, success=True, used_variables=used)

    def validate_template(self, template: str) -> ValidationResult:
        """Check placeholder syntax and variable paths without rendering."""
        issues: list[ValidationIssue] = []

        try:
            self._check_balanced(template)
        except TemplateError as e:
            issues.append(
                ValidationIssue(path="template", message=e.message, code=e.code.name)
            )

        for match in _PLACEHOLDER.finditer(template):
            try:
                self._parse_placeholder(match.group(1))
            except TemplateError as e:
                issues.append(
                    ValidationIssue(
                        path=match.group(1).strip() or match.group(0),
                        message=e.message,
                        code=e.code.name,
                    )
                )

        return ValidationResult(valid=not issues, errors=issues)

    def extract_variables(self, template: str) -> list[TemplateVariable]:
        """List the variables a template declares, one entry per path.

        Malformed placeholders are skipped; use validate_template() to see them.
        """
        variables: dict[str, TemplateVariable] = {}
        for match in _PLACEHOLDER.finditer(template):
            try:
                variable = self._parse_placeholder(match.group(1))
            except TemplateError:
                continue
            existing = variables.get(variable.path)
            if existing is None or (variable.required and not existing.required):
                # A path used both ways is required overall
                variables[variable.path] = variable
        return list(variables.values())

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _render(self, template: str, context: TemplateContext) -> tuple[str, list[str]]:
        if not isinstance(template, str):
            raise TemplateError(
                f"Template must be a string, got {type(template).__name__}",
                ErrorCode.PARAMETER_TYPE_MISMATCH,
            )
        self._check_balanced(template)

        resolved: dict[str, Any] = {}
        used: list[str] = []

        def substitute(match: re.Match[str]) -> str:
            variable = self._parse_placeholder(match.group(1))
            path = variable.path

            if path not in resolved:
                value = self._resolve(path, context)
                if value is not _MISSING:
                    value = self._stringify(path, value)
                    used.append(path)
                resolved[path] = value

            value = resolved[path]
            if value is _MISSING:
                if variable.required:
                    raise TemplateError(
                        f"Missing required variable: {path}",
                        ErrorCode.MISSING_REQUIRED_PARAMETER,
                    )
                return ""
            return value

        return _PLACEHOLDER.sub(substitute, template), used

    def _check_balanced(self, template: str) -> None:
        remainder = _PLACEHOLDER.sub("", template)
        if "{{" in remainder:
            raise TemplateError("Unterminated placeholder: missing '}}'")

    def _parse_placeholder(self, raw: str) -> TemplateVariable:
        text = raw.strip()
        required = True
        if text.endswith("?"):
            required = False
            text = text[:-1].rstrip()

        if not text:
            raise TemplateError("Empty placeholder")

        parts = text.split(".")
        if (
            len(parts) < 2
            or parts[0] not in NAMESPACES
            or not all(_SEGMENT.match(part) for part in parts[1:])
        ):
            raise TemplateError(
                f"Invalid variable path: {text}", ErrorCode.INVALID_VARIABLE_PATH
            )

        return TemplateVariable(name=text, path=text, required=required)

    def _resolve(self, path: str, context: TemplateContext) -> Any:
        namespace, *segments = path.split(".")
        current: Any = context.data if namespace == "data" else context.env

        for segment in segments:
            if isinstance(current, Mapping):
                current = current.get(segment, _MISSING)
            elif (
                isinstance(current, Sequence)
                and not isinstance(current, (str, bytes))
                and segment.isdigit()
            ):
                index = int(segment)
                current = current[index] if index < len(current) else _MISSING
            else:
                return _MISSING

            if current is _MISSING or current is None:
                return _MISSING

        return current

    def _stringify(self, path: str, value: Any) -> str:
        if isinstance(value, bool):
            return "true" if value else "false"
        if isinstance(value, str):
            return value
        if isinstance(value, (int, float)):
            return str(value)
        if isinstance(value, (Mapping, list, tuple)):
            try:
                return json.dumps(value, separators=(",", ":"), ensure_ascii=False)
            except (TypeError, ValueError) as e:
                raise TemplateError(
                    f"Variable {path} is not JSON serializable: {e}",
                    ErrorCode.PARAMETER_TYPE_MISMATCH,
                ) from e
        raise TemplateError(
            f"Variable {path} has unsupported type {type(value).__name__}",
            ErrorCode.PARAMETER_TYPE_MISMATCH,
        )
