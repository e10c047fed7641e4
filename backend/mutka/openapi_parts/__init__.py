"""Modular pieces for the programmatic OpenAPI builder.

The entity and action registries live in `constants`, path fragments in `paths`.
"""

__all__ = [
    "constants",
    "helpers",
    "paths",
]
