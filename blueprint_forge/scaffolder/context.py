"""VariableContext construction.

Merges manifest defaults, the active profile, prefixed environment variables
and explicit user overrides into one ordered, immutable mapping of typed
values.  Precedence, highest first:

    user override > environment variable > profile value > manifest default > zero value

Every value is a small closed sum type (``StringValue``, ``BoolValue``,
``EnumValue``) carrying the ``VariableSpec`` it was checked against, so type
mistakes surface here instead of halfway through rendering.
"""

from __future__ import annotations

import re
from collections.abc import Iterator, Mapping
from dataclasses import dataclass
from enum import Enum
from typing import Any, Optional, Sequence, Union

from blueprint_forge.errors import ContextError
from blueprint_forge.parser.models import VariableSpec, VariableType


# ---------------------------------------------------------------------------
# Values
# ---------------------------------------------------------------------------

_FALSE_STRINGS = frozenset({"false", "no", "off", "0"})
_TRUE_STRINGS = frozenset({"true", "yes", "on", "1"})


class ValueSource(str, Enum):
    """Which input supplied a context entry."""
    ZERO = "zero"
    DEFAULT = "default"
    PROFILE = "profile"
    ENV = "env"
    OVERRIDE = "override"


@dataclass(frozen=True)
class StringValue:
    value: str
    spec: Optional[VariableSpec] = None

    def as_python(self) -> str:
        return self.value

    def as_text(self) -> str:
        return self.value


@dataclass(frozen=True)
class BoolValue:
    value: bool
    spec: Optional[VariableSpec] = None

    def as_python(self) -> bool:
        return self.value

    def as_text(self) -> str:
        return "true" if self.value else "false"


@dataclass(frozen=True)
class EnumValue:
    value: str
    spec: Optional[VariableSpec] = None

    def as_python(self) -> str:
        return self.value

    def as_text(self) -> str:
        return self.value


VariableValue = Union[StringValue, BoolValue, EnumValue]


def is_truthy(value: Optional[VariableValue]) -> bool:
    """Truthiness used by conditions: absent, ``""`` and ``"false"`` are false."""
    if value is None:
        return False
    if isinstance(value, BoolValue):
        return value.value
    return value.as_text() not in ("", "false")


# ---------------------------------------------------------------------------
# VariableContext
# ---------------------------------------------------------------------------


class VariableContext(Mapping[str, VariableValue]):
    """Ordered, read-only mapping of variable name to typed value.

    Built fresh for every generation run and never mutated afterwards, so it
    can be shared freely between the threads rendering that run's files.
    """

    def __init__(
        self,
        values: Mapping[str, VariableValue] | None = None,
        sources: Mapping[str, ValueSource] | None = None,
    ) -> None:
        self._values: dict[str, VariableValue] = dict(values or {})
        self._sources: dict[str, ValueSource] = dict(sources or {})

    def __getitem__(self, name: str) -> VariableValue:
        return self._values[name]

    def __iter__(self) -> Iterator[str]:
        return iter(self._values)

    def __len__(self) -> int:
        return len(self._values)

    def __repr__(self) -> str:
        body = ", ".join(f"{k}={v.as_text()!r}" for k, v in self._values.items())
        return f"VariableContext({body})"

    def text(self, name: str) -> str:
        """The string form of *name*; absent variables read as ``""``."""
        value = self._values.get(name)
        return "" if value is None else value.as_text()

    def source_of(self, name: str) -> Optional[ValueSource]:
        return self._sources.get(name)

    def as_template_vars(self) -> dict[str, Any]:
        """Plain Python values keyed by name, as handed to the renderer."""
        return {name: value.as_python() for name, value in self._values.items()}

    @classmethod
    def from_plain(cls, values: Mapping[str, Any]) -> "VariableContext":
        """Build an untyped context (no specs) from plain values."""
        return cls(
            {name: _infer(value) for name, value in values.items()},
            {name: ValueSource.OVERRIDE for name in values},
        )


# ---------------------------------------------------------------------------
# Builder
# ---------------------------------------------------------------------------


def _infer(value: Any) -> VariableValue:
    if isinstance(value, bool):
        return BoolValue(value)
    if value is None:
        return StringValue("")
    return StringValue(str(value))


def _coerce_bool(raw: Any) -> bool:
    if isinstance(raw, bool):
        return raw
    text = str(raw).strip().lower()
    if text in _TRUE_STRINGS:
        return True
    if text in _FALSE_STRINGS or text == "":
        return False
    raise ValueError(f"expected a boolean, got {raw!r}")


def _coerce(spec: VariableSpec, raw: Any) -> VariableValue:
    if isinstance(raw, (list, tuple, dict, set)):
        raise ValueError(f"expected a scalar value, got {type(raw).__name__}")
    if spec.type is VariableType.BOOL:
        return BoolValue(_coerce_bool(raw), spec)
    if isinstance(raw, bool):
        text = "true" if raw else "false"
    else:
        text = "" if raw is None else str(raw)
    if spec.type is VariableType.ENUM:
        return EnumValue(text, spec)
    return StringValue(text, spec)


def _zero_value(spec: VariableSpec) -> VariableValue:
    if spec.type is VariableType.BOOL:
        return BoolValue(False, spec)
    if spec.type is VariableType.ENUM:
        return EnumValue("", spec)
    return StringValue("", spec)


def env_variables(environ: Mapping[str, str], prefix: str) -> dict[str, str]:
    """Pick the variables in *environ* whose names start with *prefix*."""
    if not prefix:
        return {}
    return {
        key[len(prefix):]: value
        for key, value in environ.items()
        if key.startswith(prefix) and len(key) > len(prefix)
    }


def build_context(
    variables: Sequence[VariableSpec],
    profile: Mapping[str, Any] | None = None,
    overrides: Mapping[str, Any] | None = None,
    env: Mapping[str, Any] | None = None,
) -> VariableContext:
    """Merge every input into a validated :class:`VariableContext`.

    Args:
        variables: The manifest's variable specs; their defaults are the lowest
            non-zero layer.
        profile: Values from the user's active profile.
        overrides: Values given explicitly for this run (flags, prompts).
        env: Variables taken from the environment (prefix already stripped).

    Returns:
        The context: declared variables in manifest order, followed by any
        extra keys supplied by the caller (kept for custom blueprint
        variables).

    Raises:
        ContextError: Listing every missing required variable, type mismatch,
            invalid choice and failed validation pattern.
    """
    layers: list[tuple[ValueSource, Mapping[str, Any]]] = [
        (ValueSource.OVERRIDE, overrides or {}),
        (ValueSource.ENV, env or {}),
        (ValueSource.PROFILE, profile or {}),
    ]
    values: dict[str, VariableValue] = {}
    sources: dict[str, ValueSource] = {}
    problems: list[str] = []

    declared = {spec.name for spec in variables}

    for spec in variables:
        raw: Any = None
        origin = ValueSource.ZERO
        for source, layer in layers:
            if spec.name in layer and layer[spec.name] is not None:
                raw, origin = layer[spec.name], source
                break
        else:
            if spec.default is not None:
                raw, origin = spec.default, ValueSource.DEFAULT

        if origin is ValueSource.ZERO:
            if spec.required:
                problems.append(f"required variable '{spec.name}' has no value")
                continue
            values[spec.name] = _zero_value(spec)
            sources[spec.name] = origin
            continue

        try:
            value = _coerce(spec, raw)
        except ValueError as exc:
            problems.append(f"variable '{spec.name}': {exc}")
            continue

        text = value.as_text()
        if spec.required and spec.type is not VariableType.BOOL and text == "":
            problems.append(f"required variable '{spec.name}' has no value")
            continue
        if spec.choices and text not in spec.choices and not (text == "" and not spec.required):
            problems.append(
                f"variable '{spec.name}': {text!r} is not one of {list(spec.choices)}"
            )
            continue
        if spec.validation_pattern and text != "" and not re.search(spec.validation_pattern, text):
            problems.append(
                f"variable '{spec.name}': {text!r} does not match {spec.validation_pattern!r}"
            )
            continue

        values[spec.name] = value
        sources[spec.name] = origin

    # Unknown keys are kept so custom blueprint variables still reach templates.
    for source, layer in reversed(layers):
        for name, raw in layer.items():
            if name in declared:
                continue
            if isinstance(raw, (list, tuple, dict, set)):
                problems.append(f"variable '{name}': expected a scalar value")
                continue
            values[name] = _infer(raw)
            sources[name] = source

    if problems:
        raise ContextError(problems)

    return VariableContext(values, sources)
