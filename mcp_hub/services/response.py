"""JSONPath extraction and reshaping of upstream response bodies."""

from __future__ import annotations

import threading
from typing import Any

from jsonpath_ng.exceptions import JSONPathError
from jsonpath_ng.ext import parse
from jsonpath_ng.jsonpath import JSONPath

from ..errors import ResponseProcessingError
from ..models import ResponseConfig


class ResponseProcessor:
    """Applies a tool's ResponseConfig to decoded response bodies.

    Expressions use the extended JSONPath syntax of jsonpath-ng, so filters
    like ``$.items[?(@.active)]`` work. Compiled expressions are cached.

    Example:
        processor = ResponseProcessor()
        config = ResponseConfig(fields={"temp": "$.main.temp", "city": "$.name"})

        processor.process({"name": "Oslo", "main": {"temp": 4}}, config)
        # {"temp": 4, "city": "Oslo"}
    """

    def __init__(self) -> None:
        self._compiled: dict[str, JSONPath] = {}
        self._lock = threading.Lock()

    def compile(self, expression: str) -> JSONPath:
        with self._lock:
            compiled = self._compiled.get(expression)
        if compiled is not None:
            return compiled

        try:
            compiled = parse(expression)
        except (JSONPathError, ValueError) as e:
            raise ResponseProcessingError(
                f"Invalid JSONPath expression {expression!r}: {e}",
                context={"expression": expression},
            ) from e

        with self._lock:
            self._compiled[expression] = compiled
        return compiled

    def validate_expression(self, expression: str) -> str | None:
        """Return an error message for an invalid expression, else None."""
        try:
            self.compile(expression)
        except ResponseProcessingError as e:
            return e.message
        return None

    def extract(self, body: Any, expression: str, strict: bool = False) -> Any:
        """Evaluate one expression.

        Returns:
            The single matched value, a list when several nodes match, or
            None when nothing matches.

        Raises:
            ResponseProcessingError: invalid expression, or no match in
                strict mode.
        """
        matches = [match.value for match in self.compile(expression).find(body)]
        if not matches:
            if strict:
                raise ResponseProcessingError(
                    f"Expression {expression!r} matched nothing in the response",
                    context={"expression": expression},
                )
            return None
        return matches[0] if len(matches) == 1 else matches

    def process(self, body: Any, config: ResponseConfig) -> Any:
        """Reshape a successful response body."""
        if config.path:
            body = self.extract(body, config.path, config.strict)
        if config.fields:
            body = {
                name: self.extract(body, expression, config.strict)
                for name, expression in config.fields.items()
            }
        return body

    def error_message(self, body: Any, config: ResponseConfig) -> str | None:
        """Pull an error message out of a failed response body, if configured."""
        if not config.error_path:
            return None
        value = self.extract(body, config.error_path)
        return None if value is None else str(value)
