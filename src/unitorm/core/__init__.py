"""
Core building blocks for UnitORM entities and relationship metadata.
"""

from .fields import (
    IDENTITY,
    SEQUENCE,
    AutoField,
    BooleanField,
    Field,
    FloatField,
    IntegerField,
    StringField,
)
from .model import Model, ModelConfigurationError, ModelMeta, ModelOptions
from .relations import (
    NOT_LOADED,
    Cascade,
    ManyToOne,
    OneToMany,
    RelationshipEdge,
    RelationshipError,
    RelationshipTable,
    relationships,
)

__all__ = [
    "IDENTITY",
    "SEQUENCE",
    "NOT_LOADED",
    "AutoField",
    "BooleanField",
    "Cascade",
    "Field",
    "FloatField",
    "IntegerField",
    "ManyToOne",
    "Model",
    "ModelConfigurationError",
    "ModelMeta",
    "ModelOptions",
    "OneToMany",
    "RelationshipEdge",
    "RelationshipError",
    "RelationshipTable",
    "StringField",
    "relationships",
]
