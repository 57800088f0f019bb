# -*- encoding: utf-8 -*-
"""
cypherql Catalogue - Live index/constraint records and creation statements.

The live catalogue is read with SHOW INDEXES / SHOW CONSTRAINTS and
normalized into CatalogueEntry records. Missing objects are described by
IndexCreation / ConstraintCreation, which render the idempotent
CREATE ... IF NOT EXISTS statement for themselves.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Mapping, Optional

from cypherql.translator.cypher import escape


class CatalogueKind(str, Enum):
    """Kinds of catalogue objects that can be inspected."""
    INDEX = "index"
    CONSTRAINT = "constraint"


class IndexType(str, Enum):
    """Search index variants."""
    FULLTEXT = "FULLTEXT"
    VECTOR = "VECTOR"


# Constraint types that enforce uniqueness of a single node property
UNIQUENESS_CONSTRAINT_TYPES = frozenset({"UNIQUENESS", "NODE_PROPERTY_UNIQUENESS", "NODE_KEY"})

CATALOGUE_QUERIES = {
    CatalogueKind.INDEX: "SHOW INDEXES YIELD name, type, entityType, labelsOrTypes, properties",
    CatalogueKind.CONSTRAINT: "SHOW CONSTRAINTS YIELD name, type, entityType, labelsOrTypes, properties",
}


@dataclass(frozen=True)
class CatalogueEntry:
    """
    One live index or constraint.

    Attributes:
        name: Object name
        type: Store-reported type (FULLTEXT, VECTOR, UNIQUENESS, ...)
        entity_type: NODE or RELATIONSHIP
        labels_or_types: Labels (or relationship types) the object covers
        properties: Indexed or constrained property names
    """
    name: str
    type: str
    entity_type: str = "NODE"
    labels_or_types: tuple[str, ...] = ()
    properties: tuple[str, ...] = ()

    @classmethod
    def from_record(cls, record: Mapping[str, Any]) -> "CatalogueEntry":
        """Build an entry from a SHOW INDEXES / SHOW CONSTRAINTS row."""
        return cls(
            name=record["name"],
            type=str(record.get("type") or ""),
            entity_type=str(record.get("entityType") or "NODE"),
            labels_or_types=tuple(record.get("labelsOrTypes") or ()),
            properties=tuple(record.get("properties") or ()),
        )

    def covers(self, labels: tuple[str, ...]) -> bool:
        """True when the entry is scoped to any of the given labels."""
        return self.entity_type == "NODE" and any(l in self.labels_or_types for l in labels)


@dataclass(frozen=True)
class IndexCreation:
    """
    A search index to create.

    Attributes:
        type: FULLTEXT or VECTOR
        name: Index name
        label: Label the index is scoped to (the entity's primary label)
        properties: Resolved property names
        dimensions: Vector dimensionality (vector only)
        similarity: Vector similarity function (vector only)
    """
    type: IndexType
    name: str
    label: str
    properties: tuple[str, ...] = field(default_factory=tuple)
    dimensions: Optional[int] = None
    similarity: str = "cosine"

    def cypher(self) -> str:
        head = f"CREATE {self.type.value} INDEX {escape(self.name)} IF NOT EXISTS FOR (n:{escape(self.label)})"
        if self.type == IndexType.FULLTEXT:
            props = ", ".join(f"n.{escape(p)}" for p in self.properties)
            return f"{head} ON EACH [{props}]"
        options = (
            f"OPTIONS {{ indexConfig: {{ `vector.dimensions`: {self.dimensions}, "
            f"`vector.similarity_function`: '{self.similarity}' }} }}"
        )
        return f"{head} ON n.{escape(self.properties[0])} {options}"


@dataclass(frozen=True)
class ConstraintCreation:
    """A single-property uniqueness constraint to create."""
    name: str
    label: str
    property: str

    def cypher(self) -> str:
        return (
            f"CREATE CONSTRAINT {escape(self.name)} IF NOT EXISTS "
            f"FOR (n:{escape(self.label)}) REQUIRE n.{escape(self.property)} IS UNIQUE"
        )
