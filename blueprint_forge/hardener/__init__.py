"""Security gate for generation runs.

Three independent checks, all returning ``ValidationViolation`` values:
the template audit (dangerous constructs and the function allow-list), the
destination path audit (traversal, reserved names, length) and the resource
limiter (file, directory and byte ceilings).
"""

from blueprint_forge.hardener.models import ValidationViolation, ViolationKind
from blueprint_forge.hardener.limits import MIB, ResourceLimiter
from blueprint_forge.hardener.path_audit import (
    RESERVED_NAMES,
    validate_path,
    validate_source_path,
)
from blueprint_forge.hardener.template_audit import TemplateAuditor, validate_template

__all__ = [
    "MIB",
    "RESERVED_NAMES",
    "ResourceLimiter",
    "TemplateAuditor",
    "ValidationViolation",
    "ViolationKind",
    "validate_path",
    "validate_source_path",
    "validate_template",
]
