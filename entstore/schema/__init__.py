"""
Schema validation for entstore entities.
"""

from .entity import EntitySchema
from .validator import JSONSchemaValidator

__all__ = [
    "EntitySchema",
    "JSONSchemaValidator",
]
