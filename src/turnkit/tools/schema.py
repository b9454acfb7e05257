"""Input schemas for tools, built on pydantic.

A tool's input schema is a pydantic model generated from the signature of
the function that implements it. The model validates incoming arguments
and provides the JSON Schema bound to the model invocation.
"""

from __future__ import annotations

import inspect
from typing import Any, Callable, Dict, Optional, Type, get_type_hints

from pydantic import BaseModel, ConfigDict, Field, ValidationError, create_model

from turnkit.core.errors import AgentError, ErrorKind, ErrorSeverity

_SKIPPED_PARAMS = ("self", "cls")
_SECTION_HEADERS = ("returns:", "raises:", "yields:", "examples:", "example:", "note:")


def extract_param_descriptions(func: Callable[..., Any]) -> Dict[str, str]:
    """Parse parameter descriptions from a Google-style docstring.

    Args:
        func: Function whose docstring to parse.

    Returns:
        Mapping of parameter name to its one-line description.
    """
    doc = inspect.getdoc(func)
    if not doc:
        return {}

    descriptions: Dict[str, str] = {}
    in_args = False
    for line in doc.splitlines():
        stripped = line.strip()
        lowered = stripped.lower()
        if lowered in ("args:", "arguments:", "parameters:"):
            in_args = True
            continue
        if not in_args:
            continue
        if lowered in _SECTION_HEADERS:
            break
        if ":" not in stripped:
            continue
        head, _, text = stripped.partition(":")
        # "name (type): text" or "name: text"
        param = head.split("(")[0].strip()
        if param.isidentifier() and text.strip():
            descriptions[param] = text.strip()
    return descriptions


def summary_line(func: Callable[..., Any]) -> Optional[str]:
    """Return the first line of a function's (or class's own) docstring, if any."""
    # __doc__ rather than inspect.getdoc: classes must not inherit a base docstring
    doc = getattr(func, "__doc__", None)
    if not doc or not doc.strip():
        return None
    return inspect.cleandoc(doc).splitlines()[0].strip()


def build_arguments_model(
    func: Callable[..., Any],
    model_name: Optional[str] = None,
) -> Type[BaseModel]:
    """Generate a pydantic model from a function signature.

    Unannotated parameters accept any value; parameters without defaults
    are required. ``*args`` is ignored; ``**kwargs`` lets unknown
    arguments through.

    Args:
        func: The function to describe.
        model_name: Name of the generated model.

    Returns:
        A pydantic model class.
    """
    signature = inspect.signature(func)
    try:
        hints = get_type_hints(func)
    except (NameError, TypeError):
        hints = {}

    descriptions = extract_param_descriptions(func)
    fields: Dict[str, Any] = {}
    accepts_extra = False

    for name, param in signature.parameters.items():
        if name in _SKIPPED_PARAMS:
            continue
        if param.kind is inspect.Parameter.VAR_KEYWORD:
            accepts_extra = True
            continue
        if param.kind is inspect.Parameter.VAR_POSITIONAL:
            continue

        annotation = hints.get(name, Any)
        default = ... if param.default is inspect.Parameter.empty else param.default
        fields[name] = (annotation, Field(default, description=descriptions.get(name)))

    name = model_name or f"{func.__name__.title().replace('_', '')}Arguments"
    config = ConfigDict(extra="allow" if accepts_extra else "ignore")
    return create_model(name, __config__=config, **fields)


def json_schema(model: Type[BaseModel]) -> Dict[str, Any]:
    """Return the JSON Schema of an argument model, without the title noise."""
    schema = model.model_json_schema()
    schema.pop("title", None)
    for prop in schema.get("properties", {}).values():
        prop.pop("title", None)
    return schema


def validate_arguments(
    model: Type[BaseModel],
    arguments: Dict[str, Any],
    tool_name: str = "",
) -> Dict[str, Any]:
    """Validate arguments against a model.

    Returns:
        The validated arguments as a dict.

    Raises:
        AgentError: VALIDATION error describing every invalid field.
    """
    try:
        validated = model.model_validate(arguments)
    except ValidationError as e:
        problems = "; ".join(
            f"{'.'.join(str(p) for p in err['loc']) or '<root>'}: {err['msg']}"
            for err in e.errors()
        )
        raise AgentError(
            f"Invalid arguments for tool '{tool_name}': {problems}",
            kind=ErrorKind.VALIDATION,
            severity=ErrorSeverity.LOW,
            context={"tool_name": tool_name},
        ) from e

    data = {name: getattr(validated, name) for name in type(validated).model_fields}
    if validated.model_extra:
        data.update(validated.model_extra)
    return data
