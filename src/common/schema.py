"""JSON Schema validation helpers for tool input and model responses.

Wraps jsonschema Draft7 validation so callers get one exception type that
names the first offending path.
"""

from __future__ import annotations

from typing import Any, Dict

from jsonschema import Draft7Validator


class SchemaError(ValueError):
    """Raised when data fails to validate against a provided schema."""

    def __init__(self, message: str, path: str = ""):
        super().__init__(message)
        self.path = path


def validate(schema: Dict[str, Any], data: Any, *, label: str = "input") -> None:
    """Validate strictly and raise on the first error.

    Args:
        schema: Draft-07 JSON Schema dict.
        data:   Payload to validate.
        label:  Word used in the error message ("input", "response", ...).
    """
    validator = Draft7Validator(schema)
    errs = sorted(validator.iter_errors(data), key=lambda e: [str(p) for p in e.path])
    if errs:
        first = errs[0]
        path = "/".join([str(p) for p in first.path])
        raise SchemaError(f"Invalid {label} at '{path}': {first.message}", path)
