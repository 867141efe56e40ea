"""Fixed catalogue of parsing configurations compared in every run."""

from __future__ import annotations

from parse_bench.errors import UnknownMethodError
from parse_bench.types import MethodConfig

METHODS: tuple[MethodConfig, ...] = (
    MethodConfig(name="basic", label="Basic", config={}),
    MethodConfig(
        name="vision",
        label="Vision",
        config={"vision": {"transcribePages": True}},
    ),
    MethodConfig(
        name="agentic",
        label="Agentic",
        config={"parsing": {"mode": "agent"}},
    ),
)

METHOD_NAMES: tuple[str, ...] = tuple(method.name for method in METHODS)


def get_method_config(name: str) -> MethodConfig | None:
    for method in METHODS:
        if method.name == name:
            return method
    return None


def require_method(name: str) -> MethodConfig:
    method = get_method_config(name)
    if method is None:
        raise UnknownMethodError(
            f"Invalid method: {name}. Valid methods: {', '.join(METHOD_NAMES)}"
        )
    return method
