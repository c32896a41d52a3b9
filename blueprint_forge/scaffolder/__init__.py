"""Blueprint Forge scaffolder: turns a manifest and variables into files.

The building blocks live here: the variable context, the condition language,
the manifest resolver, the sandboxed renderer and the atomic writer.  The
orchestrator that chains them is ``blueprint_forge.scaffolder.generator``.

Quick usage::

    from blueprint_forge.scaffolder.generator import ProjectGenerator

    generator = ProjectGenerator(registry, config)
    result = await generator.generate("web-api", "/tmp/my-service")
"""

from blueprint_forge.scaffolder.conditions import evaluate, parse_condition
from blueprint_forge.scaffolder.context import (
    BoolValue,
    EnumValue,
    StringValue,
    ValueSource,
    VariableContext,
    build_context,
)
from blueprint_forge.scaffolder.resolver import PlannedFile, PlannedHook, Resolution, resolve
from blueprint_forge.scaffolder.templates import TemplateRenderer
from blueprint_forge.scaffolder.writer import AtomicWriter, StagedFile, check_output_dir

__all__ = [
    "AtomicWriter",
    "BoolValue",
    "EnumValue",
    "PlannedFile",
    "PlannedHook",
    "Resolution",
    "StagedFile",
    "StringValue",
    "TemplateRenderer",
    "ValueSource",
    "VariableContext",
    "build_context",
    "check_output_dir",
    "evaluate",
    "parse_condition",
    "resolve",
]
