"""Tool argument checking against declared parameters.

Arguments are coerced to the declared parameter type with pydantic's lax
mode, so "5" satisfies an integer and "true" a boolean. Arguments from the
command line always arrive as text.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Sequence

from pydantic import TypeAdapter, ValidationError

from ..errors import ErrorCode
from ..models import ToolParameter

_ADAPTERS: dict[str, TypeAdapter] = {
    "string": TypeAdapter(str),
    "number": TypeAdapter(float),
    "integer": TypeAdapter(int),
    "boolean": TypeAdapter(bool),
    "object": TypeAdapter(dict),
    "array": TypeAdapter(list),
}


@dataclass
class ArgumentIssue:
    parameter: str
    code: ErrorCode
    message: str


@dataclass
class ArgumentCheck:
    arguments: dict[str, Any]
    issues: list[ArgumentIssue]

    @property
    def valid(self) -> bool:
        return not self.issues

    @property
    def error(self) -> str | None:
        """All issue messages joined, or None when valid."""
        if not self.issues:
            return None
        return "; ".join(issue.message for issue in self.issues)

    @property
    def code(self) -> ErrorCode | None:
        return self.issues[0].code if self.issues else None


def check_arguments(parameters: Sequence[ToolParameter], args: dict[str, Any]) -> ArgumentCheck:
    """Check required fields, apply defaults, coerce types and check enums.

    Arguments with no declared parameter are passed through unchanged.

    Example:
        check = check_arguments(tool.parameters, {"limit": "10"})
        if check.valid:
            render(check.arguments)  # {"limit": 10, ...}
    """
    missing = [p.name for p in parameters if p.required and args.get(p.name) is None]
    if missing:
        return ArgumentCheck(
            arguments=dict(args),
            issues=[
                ArgumentIssue(
                    parameter=missing[0],
                    code=ErrorCode.MISSING_REQUIRED_PARAMETER,
                    message=f"Missing required parameter(s): {', '.join(missing)}",
                )
            ],
        )

    arguments = dict(args)
    issues: list[ArgumentIssue] = []

    for param in parameters:
        if arguments.get(param.name) is None:
            if param.default is not None:
                arguments[param.name] = param.default
            continue

        value = arguments[param.name]
        try:
            value = _ADAPTERS[param.type].validate_python(value)
        except ValidationError:
            issues.append(
                ArgumentIssue(
                    parameter=param.name,
                    code=ErrorCode.PARAMETER_TYPE_MISMATCH,
                    message=f"Parameter '{param.name}' must be of type {param.type}, got {value!r}",
                )
            )
            continue

        if param.enum and value not in param.enum:
            allowed = ", ".join(repr(v) for v in param.enum)
            issues.append(
                ArgumentIssue(
                    parameter=param.name,
                    code=ErrorCode.INVALID_PARAMETER_VALUE,
                    message=f"Parameter '{param.name}' must be one of {allowed}, got {value!r}",
                )
            )
            continue

        arguments[param.name] = value

    return ArgumentCheck(arguments=arguments, issues=issues)
