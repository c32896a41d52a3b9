"""Blueprint Forge: blueprint resolution and secure rendering for project scaffolding."""

__version__ = "0.1.0"
