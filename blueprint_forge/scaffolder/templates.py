"""Jinja2 template rendering for blueprint files and destination paths.

Provides the TemplateRenderer class, which renders template sources that have
already passed the template audit against a ``VariableContext``.  Rendering
happens inside an immutable Jinja2 sandbox whose filters, tests and globals are
exactly the allow-list in :mod:`blueprint_forge.scaffolder.functions`.  There
is no template loader, so ``include``/``import``/``extends`` cannot reach the
filesystem.  Output is deterministic: the same source and context always give
the same bytes.
"""

from __future__ import annotations

import operator
import re
from collections.abc import Sequence
from typing import Any, Mapping

from jinja2 import StrictUndefined, TemplateError, TemplateSyntaxError, UndefinedError
from jinja2.exceptions import SecurityError
from jinja2.sandbox import ImmutableSandboxedEnvironment

from blueprint_forge.errors import RenderError
from blueprint_forge.hardener.limits import MIB
from blueprint_forge.scaffolder.context import VariableContext
from blueprint_forge.scaffolder.functions import SAFE_FILTERS, SAFE_GLOBALS, SAFE_TESTS


# ---------------------------------------------------------------------------
# Sandbox
# ---------------------------------------------------------------------------

_MAX_EXPONENT = 4096

# Manifests write variable references in paths as ``{{.Name}}``, the same form
# conditions accept.
_PATH_TAG = re.compile(r"\{\{(.*?)\}\}", re.DOTALL)
_LEADING_DOT = re.compile(r"(^-?\s*|[\s(,|])\.(?=[A-Za-z_])")


def strip_leading_dots(text: str) -> str:
    """Rewrite ``{{.Name}}`` and ``{{ .Name | lower }}`` references to plain names."""
    return _PATH_TAG.sub(lambda m: "{{" + _LEADING_DOT.sub(r"\1", m.group(1)) + "}}", text)


class _BoundedSandbox(ImmutableSandboxedEnvironment):
    """Sandbox that refuses repetition and power operations with huge results."""

    intercepted_binops = frozenset({"*", "**"})

    def __init__(self, *, max_output_size: int, **options: Any) -> None:
        super().__init__(**options)
        self.max_output_size = max_output_size

    def call_binop(self, context: Any, operator_name: str, left: Any, right: Any) -> Any:
        if operator_name == "**":
            if isinstance(right, (int, float)) and abs(right) > _MAX_EXPONENT:
                raise SecurityError(f"exponent {right} exceeds {_MAX_EXPONENT}")
            return operator.pow(left, right)
        for seq, times in ((left, right), (right, left)):
            if isinstance(seq, (str, Sequence)) and isinstance(times, int) and not isinstance(times, bool):
                if len(seq) * max(times, 0) > self.max_output_size:
                    raise SecurityError(
                        f"repetition would produce more than {self.max_output_size} items"
                    )
        return operator.mul(left, right)


# ---------------------------------------------------------------------------
# TemplateRenderer
# ---------------------------------------------------------------------------


class TemplateRenderer:
    """Renders blueprint templates and destination paths.

    One renderer can be shared by concurrent renders: the sandbox is immutable
    once built and every call gets its own variables.

    Args:
        max_output_size: Upper bound for sequences produced by ``*`` inside a
            template; defaults to the per-file size ceiling.
    """

    def __init__(self, max_output_size: int = 10 * MIB) -> None:
        self.env = _BoundedSandbox(
            max_output_size=max_output_size,
            undefined=StrictUndefined,
            autoescape=False,
            keep_trailing_newline=True,
            trim_blocks=True,
            lstrip_blocks=True,
        )
        # Replace, not extend: only allow-listed helpers are reachable.
        self.env.filters = dict(SAFE_FILTERS)
        self.env.tests = dict(SAFE_TESTS)
        self.env.globals = dict(SAFE_GLOBALS)

    # -- Rendering ---------------------------------------------------------

    def render_text(
        self,
        source: str,
        variables: Mapping[str, Any],
        *,
        template_id: str = "<string>",
    ) -> str:
        """Render *source* with plain *variables* and return text.

        Raises:
            RenderError: On syntax errors, unresolvable variables, sandbox
                violations or any other template runtime error.
        """
        try:
            template = self.env.from_string(source)
            return template.render(**variables)
        except TemplateSyntaxError as exc:
            raise RenderError(template_id, f"syntax error at line {exc.lineno}: {exc.message}") from exc
        except UndefinedError as exc:
            raise RenderError(template_id, f"undefined variable: {exc.message}") from exc
        except SecurityError as exc:
            raise RenderError(template_id, f"sandbox violation: {exc}") from exc
        except TemplateError as exc:
            raise RenderError(template_id, str(exc)) from exc
        except (TypeError, ValueError, ArithmeticError) as exc:
            raise RenderError(template_id, f"{type(exc).__name__}: {exc}") from exc

    def render(
        self,
        source: str,
        context: VariableContext,
        *,
        template_id: str = "<string>",
    ) -> bytes:
        """Render a validated template against *context* into UTF-8 bytes."""
        text = self.render_text(source, context.as_template_vars(), template_id=template_id)
        return text.encode("utf-8")

    def render_path(
        self,
        destination: str,
        context: VariableContext,
        *,
        extra: Mapping[str, Any] | None = None,
    ) -> str:
        """Render a templated destination (or hook working directory) string."""
        if "{" not in destination:
            return destination
        variables = context.as_template_vars()
        if extra:
            variables.update(extra)
        return self.render_text(
            strip_leading_dots(destination), variables, template_id=f"path {destination!r}"
        )

    # -- Utility -----------------------------------------------------------

    def parse(self, source: str):
        """Parse *source* into a Jinja2 AST without rendering it.

        Raises:
            jinja2.TemplateSyntaxError: If the source does not parse.
        """
        return self.env.parse(source)
