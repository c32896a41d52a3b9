"""Static security audit for blueprint template sources.

Scans the body of every ``{{ ... }}`` and ``{% ... %}`` tag for command, file
and network call idioms, sandbox-escape idioms and oversized format widths,
then walks the parsed Jinja2 AST for free references to modules and host
resources (``os``, ``env``, ``http`` ...), the function allow-list and the
loop-nesting ceiling.
Literal template text (the generated code itself) is never pattern-matched:
a Go template is allowed to *contain* ``os.Getenv``.
"""

from __future__ import annotations

import re
from typing import Optional

from jinja2 import Environment, TemplateSyntaxError, nodes

from blueprint_forge.hardener.limits import MIB
from blueprint_forge.hardener.models import ValidationViolation, ViolationKind
from blueprint_forge.scaffolder.functions import (
    SAFE_METHOD_CALLS,
    is_allowed_filter,
    is_allowed_global,
    is_allowed_test,
)


DEFAULT_MAX_TEMPLATE_SIZE = 1 * MIB
DEFAULT_MAX_LOOP_DEPTH = 2
DEFAULT_MAX_FORMAT_WIDTH = 99999


# ---------------------------------------------------------------------------
# Patterns (matched against tag bodies only)
# ---------------------------------------------------------------------------

_TAG = re.compile(r"\{\{(?P<expr>.*?)\}\}|\{%(?P<stmt>.*?)%\}", re.DOTALL)

_DANGEROUS_PATTERNS: tuple[tuple[re.Pattern[str], str], ...] = (
    # OS command execution
    (re.compile(r"\b(?:popen|system|spawn|check_output|call)\s*\(", re.I),
     "command execution"),
    # Environment variable access
    (re.compile(r"\bgetenv\b", re.I), "environment variable access"),
    # File system access
    (re.compile(r"(?:\bopen\s*\(|\breadFile\b|\bwriteFile\b)"), "file system access"),
    # Network access
    (re.compile(r"(?:\bfetch\s*\(|\burlopen\b)"), "network access"),
    # Code evaluation and module loading
    (re.compile(r"\b(?:eval|exec|compile|__import__|importlib|globals|locals|getattr|setattr)\b"),
     "dynamic code evaluation"),
    # Sandbox escape through Python internals
    (re.compile(r"__\w+__"), "access to interpreter internals"),
    (re.compile(r"\b(?:mro|func_globals|f_globals|gi_frame|cr_frame)\b"),
     "access to interpreter internals"),
    # Traversal through template inclusion
    (re.compile(r"\b(?:include|import|extends|from)\b\s*['\"][^'\"]*\.\.[/\\]"),
     "path traversal in template inclusion"),
)

# Free names that stand for a module or host resource.  Checked on the AST so
# that loop variables and ``set`` targets with the same name stay legal.
_DANGEROUS_ROOTS: dict[str, str] = {
    "os": "operating system access",
    "sys": "operating system access",
    "subprocess": "operating system access",
    "shutil": "operating system access",
    "builtins": "operating system access",
    "env": "environment variable access",
    "Env": "environment variable access",
    "environ": "environment variable access",
    "File": "file system access",
    "pathlib": "file system access",
    "http": "network access",
    "HTTP": "network access",
    "requests": "network access",
    "socket": "network access",
    "urllib": "network access",
}

# "%123456s", "%-0999999d", "{:>123456}", "{0:0123456}"
_PERCENT_WIDTH = re.compile(r"%[-+ #0]*(?P<width>\d+)")
_BRACE_WIDTH = re.compile(r"\{[^{}:]*:[^{}]*?(?P<width>\d+)[^{}]*\}")


def _line_of(source: str, offset: int) -> int:
    return source.count("\n", 0, offset) + 1


# ---------------------------------------------------------------------------
# TemplateAuditor
# ---------------------------------------------------------------------------


class TemplateAuditor:
    """Audits template sources before anything is rendered.

    Every violation in a template is reported, not just the first, so a
    blueprint author can fix them all in one pass.

    Args:
        max_template_size: Largest accepted template source, in bytes.
        max_loop_depth: Deepest permitted nesting of ``{% for %}`` loops.
        max_format_width: Largest permitted width in a format specifier.
    """

    def __init__(
        self,
        max_template_size: int = DEFAULT_MAX_TEMPLATE_SIZE,
        max_loop_depth: int = DEFAULT_MAX_LOOP_DEPTH,
        max_format_width: int = DEFAULT_MAX_FORMAT_WIDTH,
    ) -> None:
        self.max_template_size = max_template_size
        self.max_loop_depth = max_loop_depth
        self.max_format_width = max_format_width
        self._parser = Environment()

    @classmethod
    def from_config(cls, security) -> "TemplateAuditor":
        """Build an auditor from a :class:`~blueprint_forge.config.SecurityConfig`."""
        return cls(
            max_template_size=security.max_template_size,
            max_loop_depth=security.max_loop_depth,
            max_format_width=security.max_format_width,
        )

    def validate_template(self, source: str, template_id: str = "") -> list[ValidationViolation]:
        """Return every violation found in *source*.

        Oversized sources are rejected without being scanned further.
        """
        size = len(source.encode("utf-8"))
        if size > self.max_template_size:
            return [
                ValidationViolation(
                    kind=ViolationKind.SIZE_LIMIT_EXCEEDED,
                    description=(
                        f"template size {size} exceeds maximum {self.max_template_size} bytes"
                    ),
                    location=template_id,
                )
            ]

        violations = self._scan_tags(source, template_id)
        violations.extend(self._scan_ast(source, template_id))

        unique: list[ValidationViolation] = []
        seen: set[tuple[str, str, str]] = set()
        for violation in violations:
            key = (violation.kind.value, violation.description, violation.location)
            if key not in seen:
                seen.add(key)
                unique.append(violation)
        return unique

    # -- Pattern scan -----------------------------------------------------

    def _scan_tags(self, source: str, template_id: str) -> list[ValidationViolation]:
        violations: list[ValidationViolation] = []
        for match in _TAG.finditer(source):
            body = match.group("expr") if match.group("expr") is not None else match.group("stmt")
            location = f"{template_id}:{_line_of(source, match.start())}"

            for pattern, label in _DANGEROUS_PATTERNS:
                found = pattern.search(body)
                if found:
                    violations.append(
                        ValidationViolation(
                            kind=ViolationKind.DANGEROUS_PATTERN,
                            description=f"{label}: {found.group().strip()!r}",
                            location=location,
                        )
                    )

            width = self._largest_format_width(body)
            if width is not None and width > self.max_format_width:
                violations.append(
                    ValidationViolation(
                        kind=ViolationKind.DANGEROUS_PATTERN,
                        description=(
                            f"format width {width} exceeds maximum {self.max_format_width}"
                        ),
                        location=location,
                    )
                )
        return violations

    @staticmethod
    def _largest_format_width(body: str) -> Optional[int]:
        widths = [int(m.group("width")) for m in _PERCENT_WIDTH.finditer(body)]
        widths.extend(int(m.group("width")) for m in _BRACE_WIDTH.finditer(body))
        return max(widths) if widths else None

    # -- AST scan ---------------------------------------------------------

    def _scan_ast(self, source: str, template_id: str) -> list[ValidationViolation]:
        try:
            tree = self._parser.parse(source)
        except TemplateSyntaxError:
            # Reported by the renderer with the template's identifier.
            return []

        violations: list[ValidationViolation] = []

        def add(kind: ViolationKind, description: str, node: nodes.Node) -> None:
            violations.append(
                ValidationViolation(
                    kind=kind,
                    description=description,
                    location=f"{template_id}:{getattr(node, 'lineno', 0)}",
                )
            )

        macros = {macro.name for macro in tree.find_all(nodes.Macro)}
        bound = {name.name for name in tree.find_all(nodes.Name) if name.ctx in ("store", "param")}

        for node in tree.find_all(nodes.Name):
            label = _DANGEROUS_ROOTS.get(node.name)
            if label and node.ctx == "load" and node.name not in bound:
                add(ViolationKind.DANGEROUS_PATTERN, f"{label}: '{node.name}'", node)

        for node in tree.find_all(nodes.Filter):
            if node.name and not is_allowed_filter(node.name):
                add(ViolationKind.UNSAFE_FUNCTION, f"filter '{node.name}' is not allowed", node)

        for node in tree.find_all(nodes.Test):
            if not is_allowed_test(node.name):
                add(ViolationKind.UNSAFE_FUNCTION, f"test '{node.name}' is not allowed", node)

        for node in tree.find_all(nodes.Call):
            target = node.node
            if isinstance(target, nodes.Name):
                if not (is_allowed_global(target.name) or target.name in macros):
                    add(
                        ViolationKind.UNSAFE_FUNCTION,
                        f"function '{target.name}' is not allowed",
                        node,
                    )
            elif isinstance(target, nodes.Getattr) and isinstance(target.node, nodes.Name):
                if (target.node.name, target.attr) not in SAFE_METHOD_CALLS:
                    add(
                        ViolationKind.UNSAFE_FUNCTION,
                        f"method call '{target.node.name}.{target.attr}()' is not allowed",
                        node,
                    )
            else:
                add(ViolationKind.UNSAFE_FUNCTION, "indirect call is not allowed", node)

        for node in tree.find_all((nodes.Include, nodes.Import, nodes.FromImport, nodes.Extends)):
            add(
                ViolationKind.UNSAFE_FUNCTION,
                f"template inclusion ('{type(node).__name__.lower()}') is not allowed",
                node,
            )

        for loop, depth in _loop_depths(tree):
            if depth > self.max_loop_depth:
                add(
                    ViolationKind.DANGEROUS_PATTERN,
                    f"loops nested {depth} levels deep (max {self.max_loop_depth})",
                    loop,
                )

        return violations


def _loop_depths(tree: nodes.Node, depth: int = 0):
    """Yield ``(for_node, nesting_depth)`` for every loop in *tree*."""
    for child in tree.iter_child_nodes():
        if isinstance(child, nodes.For):
            yield child, depth + 1
            yield from _loop_depths(child, depth + 1)
        else:
            yield from _loop_depths(child, depth)


def validate_template(source: str, template_id: str = "") -> list[ValidationViolation]:
    """Audit *source* with the default ceilings."""
    return TemplateAuditor().validate_template(source, template_id)
