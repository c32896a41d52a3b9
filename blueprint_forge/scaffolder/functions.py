"""The allow-list of functions reachable from blueprint templates.

This module is the single source of truth for what a template may call.  The
renderer installs exactly these filters, tests and globals into its sandbox
(nothing else is registered), and the template audit rejects any call whose
name is not listed here.  Adding a helper therefore means adding it here and
nowhere else.

Names follow the helper vocabulary blueprint authors already know (``trimAll``,
``hasPrefix``, ``b64enc``...) next to the usual Jinja2 built-ins.  Helpers that
would make output non-deterministic (clock, random strings) are deliberately
absent.
"""

from __future__ import annotations

import base64
import re
from typing import Any, Callable
from urllib.parse import quote_plus

from jinja2.filters import FILTERS as _JINJA_FILTERS
from jinja2.sandbox import safe_range
from jinja2.tests import TESTS as _JINJA_TESTS
from jinja2.utils import Cycler, Joiner, Namespace


# ---------------------------------------------------------------------------
# String helpers
# ---------------------------------------------------------------------------

def _slugify_filter(value: str) -> str:
    """Convert a string to a URL/filename-safe slug."""
    slug = re.sub(r"[^a-z0-9]+", "-", str(value).lower().strip())
    return slug.strip("-")


def _pascal_case_filter(value: str) -> str:
    """Convert ``some-thing`` or ``some_thing`` to ``SomeThing``."""
    parts = re.split(r"[-_\s]+", str(value))
    return "".join(word[:1].upper() + word[1:] for word in parts if word)


def _snake_case_filter(value: str) -> str:
    """Convert ``SomeThing`` or ``some-thing`` to ``some_thing``."""
    s1 = re.sub(r"(.)([A-Z][a-z]+)", r"\1_\2", str(value))
    s2 = re.sub(r"([a-z0-9])([A-Z])", r"\1_\2", s1)
    return re.sub(r"[-\s]+", "_", s2).lower()


def _camel_case_filter(value: str) -> str:
    """Convert ``some-thing`` or ``some_thing`` to ``someThing``."""
    pascal = _pascal_case_filter(value)
    if pascal:
        return pascal[0].lower() + pascal[1:]
    return ""


def _trim_all(value: Any, cutset: str = " ") -> str:
    return str(value).strip(cutset)


def _trim_prefix(value: Any, prefix: str) -> str:
    text = str(value)
    return text[len(prefix):] if prefix and text.startswith(prefix) else text


def _trim_suffix(value: Any, suffix: str) -> str:
    text = str(value)
    return text[: -len(suffix)] if suffix and text.endswith(suffix) else text


def _quote(value: Any) -> str:
    text = str(value).replace("\\", "\\\\").replace('"', '\\"')
    return f'"{text}"'


def _squote(value: Any) -> str:
    return f"'{value}'"


def _split(value: Any, separator: str | None = None) -> list[str]:
    return str(value).split(separator)


def _contains(value: Any, needle: Any) -> bool:
    if isinstance(value, str):
        return str(needle) in value
    try:
        return needle in value
    except TypeError:
        return False


def _has_prefix(value: Any, prefix: str) -> bool:
    return str(value).startswith(prefix)


def _has_suffix(value: Any, suffix: str) -> bool:
    return str(value).endswith(suffix)


# ---------------------------------------------------------------------------
# Number helpers
# ---------------------------------------------------------------------------

def _number(value: Any) -> int | float:
    if isinstance(value, bool):
        return int(value)
    if isinstance(value, (int, float)):
        return value
    text = str(value).strip()
    try:
        return int(text)
    except ValueError:
        return float(text)


def _add(value: Any, other: Any) -> int | float:
    return _number(value) + _number(other)


def _sub(value: Any, other: Any) -> int | float:
    return _number(value) - _number(other)


def _mul(value: Any, other: Any) -> int | float:
    return _number(value) * _number(other)


def _div(value: Any, other: Any) -> int | float:
    left, right = _number(value), _number(other)
    if isinstance(left, int) and isinstance(right, int):
        return left // right
    return left / right


def _mod(value: Any, other: Any) -> int | float:
    return _number(value) % _number(other)


# ---------------------------------------------------------------------------
# Encoding helpers
# ---------------------------------------------------------------------------

def _b64enc(value: Any) -> str:
    return base64.b64encode(str(value).encode("utf-8")).decode("ascii")


def _b64dec(value: Any) -> str:
    return base64.b64decode(str(value).encode("ascii")).decode("utf-8")


def _urlquery(value: Any) -> str:
    return quote_plus(str(value))


# ---------------------------------------------------------------------------
# List helpers
# ---------------------------------------------------------------------------

def _initial(value: Any) -> list[Any]:
    return list(value)[:-1]


def _rest(value: Any) -> list[Any]:
    return list(value)[1:]


def _uniq(value: Any) -> list[Any]:
    seen: list[Any] = []
    for item in value:
        if item not in seen:
            seen.append(item)
    return seen


def _compact(value: Any) -> list[Any]:
    return [item for item in value if item not in (None, "", False)]


def _slice(value: Any, start: int = 0, end: int | None = None) -> list[Any]:
    """``list[start:end]`` (not Jinja's column-splitting ``slice``)."""
    return list(value)[start:end]


# ---------------------------------------------------------------------------
# The allow-list
# ---------------------------------------------------------------------------

_BUILTIN_FILTER_NAMES = (
    # strings
    "upper", "lower", "title", "capitalize", "trim", "replace", "join",
    "indent", "format", "length", "count", "string", "truncate", "center",
    "wordwrap",
    # numbers
    "int", "float", "round", "abs", "min", "max", "sum",
    # logic
    "default", "d",
    # encoding
    "tojson", "urlencode",
    # lists
    "list", "first", "last", "reverse", "sort", "unique", "batch",
)

_BUILTIN_TEST_NAMES = (
    "defined", "undefined", "none", "true", "false", "boolean", "string",
    "number", "integer", "float", "sequence", "mapping", "iterable",
    "eq", "ne", "lt", "le", "gt", "ge", "equalto", "greaterthan", "lessthan",
    "in", "even", "odd", "divisibleby", "lower", "upper",
)

SAFE_FILTERS: dict[str, Callable[..., Any]] = {
    name: _JINJA_FILTERS[name] for name in _BUILTIN_FILTER_NAMES
}
SAFE_FILTERS.update(
    {
        # strings
        "trimAll": _trim_all,
        "trimPrefix": _trim_prefix,
        "trimSuffix": _trim_suffix,
        "quote": _quote,
        "squote": _squote,
        "split": _split,
        "contains": _contains,
        "hasPrefix": _has_prefix,
        "hasSuffix": _has_suffix,
        "slugify": _slugify_filter,
        "pascal_case": _pascal_case_filter,
        "snake_case": _snake_case_filter,
        "camel_case": _camel_case_filter,
        # numbers
        "add": _add,
        "sub": _sub,
        "mul": _mul,
        "div": _div,
        "mod": _mod,
        # encoding
        "b64enc": _b64enc,
        "b64dec": _b64dec,
        "urlquery": _urlquery,
        # lists
        "initial": _initial,
        "rest": _rest,
        "uniq": _uniq,
        "compact": _compact,
        "slice": _slice,
    }
)

SAFE_TESTS: dict[str, Callable[..., Any]] = {
    name: _JINJA_TESTS[name] for name in _BUILTIN_TEST_NAMES
}
SAFE_TESTS.update(
    {
        "contains": _contains,
        "hasPrefix": _has_prefix,
        "hasSuffix": _has_suffix,
    }
)

SAFE_GLOBALS: dict[str, Any] = {
    "range": safe_range,
    "dict": dict,
    "namespace": Namespace,
    "cycler": Cycler,
    "joiner": Joiner,
}

# ``loop.cycle(...)`` and ``loop.changed(...)`` are the only method calls a
# template may make.
SAFE_METHOD_CALLS: frozenset[tuple[str, str]] = frozenset(
    {("loop", "cycle"), ("loop", "changed")}
)

# Names that are callable inside any template without being registered.
IMPLICIT_CALLABLES: frozenset[str] = frozenset({"caller", "super"})


def is_allowed_filter(name: str) -> bool:
    return name in SAFE_FILTERS


def is_allowed_test(name: str) -> bool:
    return name in SAFE_TESTS


def is_allowed_global(name: str) -> bool:
    return name in SAFE_GLOBALS or name in IMPLICIT_CALLABLES
