"""Step input builder.

``compile_input`` turns a declarative list of field references into a pure
``(StepContext) -> dict`` function::

    build_input = compile_input([
        "textModel",
        "style",
        FieldRef(name="width", default=1024),
        FieldRef(name="scriptContent", source=lambda ctx: ctx.result_of(0, "content")),
    ])

Unregistered names fail here, when the workflow definitions are imported,
never while a job is running.
"""

from __future__ import annotations

from typing import Any, Callable, Dict, List, Mapping, Optional, Sequence, Union

from pydantic import BaseModel, ConfigDict

from .contracts import BuildInput, StepContext
from .exceptions import UnknownField
from .registry import FIELD_REGISTRY, FieldSpec

Resolver = Callable[[StepContext], Any]


class FieldRef(BaseModel):
    """Per-step override of a registered field.

    ``source`` may be a job-parameter key or a resolver callable. A callable
    source allows a name that is not in the registry.
    """

    model_config = ConfigDict(frozen=True)

    name: str
    source: Union[str, Resolver, None] = None
    default: Any = None


class _CompiledField(BaseModel):
    name: str
    source: Optional[str] = None
    default: Any = None
    resolver: Optional[Resolver] = None


def _compile_field(
    ref: Union[str, FieldRef], registry: Mapping[str, FieldSpec]
) -> _CompiledField:
    if isinstance(ref, str):
        spec = registry.get(ref)
        if spec is None:
            raise UnknownField(ref)
        return _CompiledField(
            name=ref, source=spec.source, default=spec.default, resolver=spec.resolver
        )

    if not ref.name:
        raise UnknownField(ref.name)

    spec = registry.get(ref.name)
    default = ref.default if "default" in ref.model_fields_set else (
        spec.default if spec else None
    )

    if callable(ref.source):
        return _CompiledField(name=ref.name, resolver=ref.source, default=default)

    if spec is None and ref.source is None:
        raise UnknownField(ref.name)

    if ref.source is not None:
        return _CompiledField(name=ref.name, source=ref.source, default=default)

    return _CompiledField(
        name=ref.name, source=spec.source, default=default, resolver=spec.resolver
    )


def compile_input(
    fields: Sequence[Union[str, FieldRef]],
    registry: Mapping[str, FieldSpec] = FIELD_REGISTRY,
) -> BuildInput:
    """Compile ``fields`` into a step input builder.

    Raises:
        UnknownField: a bare name (or an override without a source) is not
            present in ``registry``.
    """

    compiled: List[_CompiledField] = [_compile_field(f, registry) for f in fields]

    def build_input(context: StepContext) -> Dict[str, Any]:
        params: Dict[str, Any] = {}
        for field in compiled:
            if field.resolver is not None:
                value = field.resolver(context)
            elif field.source is not None:
                value = context.job_params.get(field.source)
            else:
                value = None
            params[field.name] = field.default if value is None else value
        return params

    build_input.fields = [f.name for f in compiled]  # type: ignore[attr-defined]
    return build_input


__all__ = ["FieldRef", "compile_input"]
