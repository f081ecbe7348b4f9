"""Validate tool arguments against a tool's declared input schema."""

from typing import Any

from pydantic import BaseModel, Field

from mcp_gateway.mcp.errors import ArgumentValidationError

# JSON Schema type -> Python runtime types. bool is excluded from the numeric
# types because it subclasses int.
JSON_TYPES: dict[str, tuple[type, ...]] = {
    "string": (str,),
    "integer": (int,),
    "number": (int, float),
    "boolean": (bool,),
    "object": (dict,),
    "array": (list, tuple),
    "null": (type(None),),
}


class ValidationResult(BaseModel):
    """Filtered arguments plus any violations found."""

    arguments: dict[str, Any] = Field(default_factory=dict)
    violations: list[str] = Field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not self.violations

    def raise_for_violations(self, tool_name: str) -> None:
        if self.violations:
            raise ArgumentValidationError(tool_name, self.violations)


def matches_type(value: Any, declared: Any) -> bool:
    """Check a value against a declared JSON type; unknown types pass."""
    if isinstance(declared, list):
        return any(matches_type(value, t) for t in declared) if declared else True
    if not isinstance(declared, str) or declared not in JSON_TYPES:
        return True
    if declared in ("integer", "number") and isinstance(value, bool):
        return False
    return isinstance(value, JSON_TYPES[declared])


def validate_arguments(
    schema: dict[str, Any] | None, arguments: dict[str, Any] | None
) -> ValidationResult:
    """
    Filter ``arguments`` to the declared properties and check them.

    A schema without properties accepts no parameters: everything supplied
    is dropped, and the result has no violations unless the schema still
    lists required names.
    """
    schema = schema or {}
    arguments = arguments or {}
    properties = schema.get("properties") or {}
    if not isinstance(properties, dict):
        properties = {}
    required = schema.get("required")
    if not isinstance(required, list):
        required = []

    filtered = {key: value for key, value in arguments.items() if key in properties}
    violations: list[str] = []

    # an undeclared required name is filtered out, so it is always missing
    for name in required:
        if filtered.get(name) is None:
            violations.append(f"Missing required parameter: '{name}'")

    for name, value in filtered.items():
        prop = properties.get(name)
        declared = prop.get("type") if isinstance(prop, dict) else None
        if value is not None and not matches_type(value, declared):
            violations.append(
                f"Parameter '{name}' should be of type {declared}, got {type(value).__name__}"
            )

    return ValidationResult(arguments=filtered, violations=violations)
