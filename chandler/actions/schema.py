"""Compile declarative parameter schemas into pydantic models.

Supports the JSON-schema subset used by action configurations: the
primitive types, arrays, nested objects, ``enum``, ``default`` and the
usual numeric and string constraints.
"""

from typing import Annotated, Any, Literal

from pydantic import BaseModel, ConfigDict, Field, create_model

_PRIMITIVES: dict[str, Any] = {
    "string": str,
    "integer": int,
    "number": float,
    "boolean": bool,
}

_CONSTRAINTS: dict[str, str] = {
    "minimum": "ge",
    "maximum": "le",
    "exclusiveMinimum": "gt",
    "exclusiveMaximum": "lt",
    "minLength": "min_length",
    "maxLength": "max_length",
    "minItems": "min_length",
    "maxItems": "max_length",
    "pattern": "pattern",
}


class ParameterModel(BaseModel):
    """Base for compiled parameter models."""

    model_config = ConfigDict(extra="ignore")


def schema_problems(schema: Any) -> list[str]:
    """List structural problems with a parameters schema."""
    if not isinstance(schema, dict):
        return ["parameters must be an object schema"]
    problems = []
    if schema.get("type") != "object":
        problems.append("parameters.type must be 'object'")
    if not isinstance(schema.get("properties"), dict):
        problems.append("parameters.properties must be a mapping")
    required = schema.get("required", [])
    if not isinstance(required, list):
        problems.append("parameters.required must be a list")
    elif isinstance(schema.get("properties"), dict):
        for name in required:
            if name not in schema["properties"]:
                problems.append(f"required parameter '{name}' is not declared")
    return problems


def _constraints(prop: dict[str, Any]) -> dict[str, Any]:
    return {target: prop[source] for source, target in _CONSTRAINTS.items() if source in prop}


def _python_type(name: str, prop: dict[str, Any]) -> Any:
    if "enum" in prop:
        return Literal[tuple(prop["enum"])]

    kind = prop.get("type", "string")
    if kind in _PRIMITIVES:
        return _PRIMITIVES[kind]
    if kind == "array":
        items = prop.get("items") or {}
        item_type = _python_type(f"{name}_item", items)
        item_constraints = _constraints(items)
        if item_constraints:
            item_type = Annotated[item_type, Field(**item_constraints)]
        return list[item_type]  # type: ignore[valid-type]
    if kind == "object":
        if isinstance(prop.get("properties"), dict):
            return compile_schema(f"{name}_object", prop)
        return dict[str, Any]
    return Any


def compile_schema(model_name: str, schema: dict[str, Any]) -> type[BaseModel]:
    """Build a pydantic model class from an object schema."""
    required = set(schema.get("required", []))
    fields: dict[str, Any] = {}
    for name, prop in schema.get("properties", {}).items():
        prop = prop or {}
        annotation = _python_type(name, prop)
        constraints = _constraints(prop)
        description = prop.get("description")

        if name in required:
            fields[name] = (annotation, Field(..., description=description, **constraints))
        elif "default" in prop:
            fields[name] = (
                annotation,
                Field(default=prop["default"], description=description, **constraints),
            )
        else:
            fields[name] = (
                annotation | None,
                Field(default=None, description=description, **constraints),
            )

    return create_model(model_name, __base__=ParameterModel, **fields)
