"""cypherql Schema module - Metadata Model and the builder that derives it from type definitions."""

from cypherql.schema.builder import SchemaBuilder, build_schema
from cypherql.schema.model import (
    Attribute,
    AuthorizationAnnotation,
    AuthorizationOperation,
    AuthorizationWhere,
    Entity,
    FilterRule,
    FulltextIndex,
    QueryDirection,
    Relationship,
    RelationshipDirection,
    RootField,
    RootFieldKind,
    Schema,
    SearchIndexSpec,
    UniquenessKind,
    UniquenessSpec,
    ValidateRule,
    ValidationTiming,
    VectorIndex,
    pluralize,
)

__all__ = [
    "SchemaBuilder",
    "build_schema",
    "Attribute",
    "AuthorizationAnnotation",
    "AuthorizationOperation",
    "AuthorizationWhere",
    "Entity",
    "FilterRule",
    "FulltextIndex",
    "QueryDirection",
    "Relationship",
    "RelationshipDirection",
    "RootField",
    "RootFieldKind",
    "Schema",
    "SearchIndexSpec",
    "UniquenessKind",
    "UniquenessSpec",
    "ValidateRule",
    "ValidationTiming",
    "VectorIndex",
    "pluralize",
]
