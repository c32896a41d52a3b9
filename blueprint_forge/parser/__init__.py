"""Blueprint manifests: data model, loading and the blueprint registry.

Usage::

    from blueprint_forge.parser import BlueprintRegistry

    registry = BlueprintRegistry.from_directory("blueprints/")
    blueprint = registry.get("web-api")
    print(blueprint.manifest.identifier)
"""

from blueprint_forge.parser.loader import (
    Blueprint,
    DirectoryTemplateStore,
    InMemoryTemplateStore,
    TemplateSourceError,
    TemplateStore,
    blueprint_from_mapping,
    discover_blueprints,
    load_blueprint,
    load_manifest,
    parse_manifest,
)
from blueprint_forge.parser.models import (
    BlueprintManifest,
    DependencySpec,
    FileEntry,
    HookSpec,
    VariableSpec,
    VariableType,
)
from blueprint_forge.parser.registry import BlueprintRegistry

__all__ = [
    "Blueprint",
    "BlueprintManifest",
    "BlueprintRegistry",
    "DependencySpec",
    "DirectoryTemplateStore",
    "FileEntry",
    "HookSpec",
    "InMemoryTemplateStore",
    "TemplateSourceError",
    "TemplateStore",
    "VariableSpec",
    "VariableType",
    "blueprint_from_mapping",
    "discover_blueprints",
    "load_blueprint",
    "load_manifest",
    "parse_manifest",
]
