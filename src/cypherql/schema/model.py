# -*- encoding: utf-8 -*-
"""
cypherql Metadata Model - Entities, fields, relationships and their specs.

The model is built once from type definitions by the schema builder and
is read-only afterwards. Search index specs are a closed set of tagged
variants (FulltextIndex | VectorIndex); consumers dispatch on them with
isinstance checks.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Iterator, Optional, Union


SCALAR_TYPES = frozenset({"ID", "String", "Int", "Float", "Boolean"})
STRING_TYPES = frozenset({"ID", "String"})
NUMERIC_TYPES = frozenset({"Int", "Float"})


class RelationshipDirection(Enum):
    """Stored direction of a relationship, seen from the declaring entity."""
    IN = "IN"
    OUT = "OUT"


class QueryDirection(Enum):
    """Whether traversals honour the stored direction."""
    DIRECTED = "DIRECTED"
    UNDIRECTED = "UNDIRECTED"


class UniquenessKind(Enum):
    """Origin of a uniqueness spec."""
    UNIQUE = "unique"        # @unique
    IDENTITY = "identity"    # @id(unique: true)


class AuthorizationOperation(Enum):
    """Operation kinds an authorization rule can be restricted to."""
    READ = "READ"
    AGGREGATE = "AGGREGATE"
    CREATE = "CREATE"
    UPDATE = "UPDATE"
    DELETE = "DELETE"


class ValidationTiming(Enum):
    """When a validate rule runs relative to the write."""
    BEFORE = "BEFORE"
    AFTER = "AFTER"


@dataclass(frozen=True)
class Attribute:
    """
    A scalar field of an entity.

    Attributes:
        name: Declared field name, used in requests and responses
        db_name: Stored property name, the only name emitted in Cypher
        type_name: Scalar or enum type name
        is_list: True for list-valued fields
        required: True for non-null fields
        autogenerate: True for @id(autogenerate: true) fields
        is_enum: True when type_name names a declared enum
    """
    name: str
    db_name: str
    type_name: str
    is_list: bool = False
    required: bool = False
    autogenerate: bool = False
    is_enum: bool = False

    @property
    def is_aliased(self) -> bool:
        return self.name != self.db_name

    @property
    def is_string(self) -> bool:
        return self.type_name in STRING_TYPES or self.is_enum

    @property
    def is_numeric(self) -> bool:
        return self.type_name in NUMERIC_TYPES


@dataclass(frozen=True)
class Relationship:
    """
    A relationship field linking an entity to a target entity.

    Attributes:
        name: Declared field name
        type: Relationship type stored in the graph
        direction: IN or OUT, seen from the declaring entity
        target: Name of the target entity
        is_list: True for to-many relationships
        required: True for non-null fields
        query_direction: DIRECTED or UNDIRECTED default for traversals
        fixed_direction: True for the *_ONLY query directions, which a
            request cannot override
    """
    name: str
    type: str
    direction: RelationshipDirection
    target: str
    is_list: bool = True
    required: bool = False
    query_direction: QueryDirection = QueryDirection.DIRECTED
    fixed_direction: bool = False

    @property
    def is_directed(self) -> bool:
        return self.query_direction == QueryDirection.DIRECTED

    def arrows(self, directed: Optional[bool] = None) -> tuple[str, str]:
        """
        Return the left and right arrow fragments for a traversal.

        Args:
            directed: Override for the relationship's query direction

        Returns:
            ("-", "->"), ("<-", "-") or ("-", "-")
        """
        if directed is None:
            directed = self.is_directed
        if not directed:
            return "-", "-"
        if self.direction == RelationshipDirection.OUT:
            return "-", "->"
        return "<-", "-"


@dataclass(frozen=True)
class FulltextIndex:
    """A full-text index declared with @fulltext."""
    name: str
    fields: tuple[str, ...]
    query_name: Optional[str] = None


@dataclass(frozen=True)
class VectorIndex:
    """A vector index declared with @vector."""
    name: str
    embedding_property: str
    dimensions: Optional[int] = None
    similarity_function: str = "cosine"
    query_name: Optional[str] = None
    provider: Optional[str] = None


SearchIndexSpec = Union[FulltextIndex, VectorIndex]


@dataclass(frozen=True)
class UniquenessSpec:
    """A uniqueness requirement on one attribute of an entity."""
    entity: str
    attribute: str
    kind: UniquenessKind
    constraint_name: Optional[str] = None


@dataclass(frozen=True)
class AuthorizationWhere:
    """
    Condition of an authorization rule.

    Attributes:
        node: Filter on the node, may reference "$jwt.<path>" values
        jwt: Filter on the decoded claims, evaluated without the database
    """
    node: Optional[dict] = None
    jwt: Optional[dict] = None


@dataclass(frozen=True)
class FilterRule:
    """An @authorization filter rule; narrows the visible rows."""
    where: AuthorizationWhere
    operations: frozenset = frozenset()
    require_authentication: bool = True

    def applies_to(self, operation: AuthorizationOperation) -> bool:
        return not self.operations or operation in self.operations


@dataclass(frozen=True)
class ValidateRule:
    """An @authorization validate rule; aborts the request when false."""
    where: AuthorizationWhere
    operations: frozenset = frozenset()
    when: frozenset = frozenset({ValidationTiming.BEFORE, ValidationTiming.AFTER})
    require_authentication: bool = True

    def applies_to(self, operation: AuthorizationOperation, timing: ValidationTiming) -> bool:
        return (not self.operations or operation in self.operations) and timing in self.when


@dataclass(frozen=True)
class AuthorizationAnnotation:
    """All authorization rules declared on an entity."""
    filter: tuple[FilterRule, ...] = ()
    validate: tuple[ValidateRule, ...] = ()

    @property
    def is_empty(self) -> bool:
        return not self.filter and not self.validate


@dataclass
class Entity:
    """
    A node type of the schema.

    Attributes:
        name: Canonical type name
        labels: Non-empty ordered labels, the first one is primary
        attributes: Scalar fields keyed by declared name, in declaration order
        relationships: Relationship fields keyed by declared name
        fulltext_indexes: Declared full-text indexes
        vector_indexes: Declared vector indexes
        uniqueness: Declared uniqueness specs
        authorization: Authorization rules
        plural: Root field stem for list operations
        limit_default: Page size applied when a request gives none
        limit_max: Upper bound on any requested page size
    """
    name: str
    labels: tuple[str, ...]
    attributes: dict[str, Attribute] = field(default_factory=dict)
    relationships: dict[str, Relationship] = field(default_factory=dict)
    fulltext_indexes: tuple[FulltextIndex, ...] = ()
    vector_indexes: tuple[VectorIndex, ...] = ()
    uniqueness: tuple[UniquenessSpec, ...] = ()
    authorization: AuthorizationAnnotation = field(default_factory=AuthorizationAnnotation)
    plural: str = ""
    limit_default: Optional[int] = None
    limit_max: Optional[int] = None

    @property
    def primary_label(self) -> str:
        return self.labels[0]

    @property
    def key(self) -> str:
        """Lower-camel singular name, used as the entity key in search results."""
        return self.name[:1].lower() + self.name[1:]

    def attribute(self, name: str) -> Optional[Attribute]:
        return self.attributes.get(name)

    def relationship(self, name: str) -> Optional[Relationship]:
        return self.relationships.get(name)

    def search_indexes(self) -> Iterator[SearchIndexSpec]:
        yield from self.fulltext_indexes
        yield from self.vector_indexes

    def fulltext_index(self, name: str) -> Optional[FulltextIndex]:
        for index in self.fulltext_indexes:
            if index.name == name:
                return index
        return None


class RootFieldKind(Enum):
    """Kinds of root fields the compiler can answer."""
    READ = "read"
    CONNECTION = "connection"
    AGGREGATE = "aggregate"
    FULLTEXT = "fulltext"
    VECTOR = "vector"
    CREATE = "create"


@dataclass(frozen=True)
class RootField:
    """Resolution of a root field name to an entity and operation kind."""
    name: str
    kind: RootFieldKind
    entity: str
    index: Optional[SearchIndexSpec] = None


def upper_first(value: str) -> str:
    return value[:1].upper() + value[1:]


def lower_first(value: str) -> str:
    return value[:1].lower() + value[1:]


_IRREGULAR_PLURALS = {
    "person": "people",
    "man": "men",
    "woman": "women",
    "child": "children",
    "mouse": "mice",
    "goose": "geese",
}


def pluralize(name: str) -> str:
    """
    Derive the lower-camel plural used for root fields.

    Movie -> movies, Person -> people, Category -> categories.
    """
    word = lower_first(name)
    lowered = word.lower()
    for singular, plural in _IRREGULAR_PLURALS.items():
        if lowered == singular:
            return plural
        # camel-case word boundary: salesPerson -> salesPeople
        suffix = word[len(word) - len(singular):]
        if lowered.endswith(singular) and suffix[:1].isupper():
            return word[:len(word) - len(singular)] + upper_first(plural)
    if lowered.endswith("y") and lowered[-2:-1] not in ("a", "e", "i", "o", "u"):
        return word[:-1] + "ies"
    if lowered.endswith(("s", "x", "z", "ch", "sh")):
        return word + "es"
    return word + "s"


@dataclass
class Schema:
    """
    The complete Metadata Model.

    Attributes:
        entities: Entities keyed by name, in declaration order
        enums: Declared enum types, name -> allowed values
    """
    entities: dict[str, Entity] = field(default_factory=dict)
    enums: dict[str, tuple[str, ...]] = field(default_factory=dict)
    _root_fields: dict[tuple[str, str], RootField] = field(default_factory=dict, repr=False)

    def entity(self, name: str) -> Entity:
        """
        Look up an entity by name.

        Raises:
            KeyError: If no entity has that name
        """
        return self.entities[name]

    def root_fields(self) -> dict[tuple[str, str], RootField]:
        """
        Return every root field, keyed by (operation type, field name).

        The table is derived lazily from the entities and cached.
        """
        if not self._root_fields:
            table = {}
            for entity in self.entities.values():
                plural = entity.plural
                for name, kind in (
                    (plural, RootFieldKind.READ),
                    (f"{plural}Connection", RootFieldKind.CONNECTION),
                    (f"{plural}Aggregate", RootFieldKind.AGGREGATE),
                ):
                    table[("query", name)] = RootField(name, kind, entity.name)
                for index in entity.fulltext_indexes:
                    name = index.query_name or f"{plural}Fulltext{upper_first(index.name)}"
                    table[("query", name)] = RootField(name, RootFieldKind.FULLTEXT, entity.name, index)
                for index in entity.vector_indexes:
                    name = index.query_name or f"{plural}Vector{upper_first(index.name)}"
                    table[("query", name)] = RootField(name, RootFieldKind.VECTOR, entity.name, index)
                name = f"create{upper_first(plural)}"
                table[("mutation", name)] = RootField(name, RootFieldKind.CREATE, entity.name)
            self._root_fields = table
        return self._root_fields

    def root_field(self, operation: str, name: str) -> Optional[RootField]:
        return self.root_fields().get((operation, name))

    def uniqueness_specs(self) -> Iterator[tuple[Entity, UniquenessSpec]]:
        for entity in self.entities.values():
            for spec in entity.uniqueness:
                yield entity, spec

    def search_index_specs(self) -> Iterator[tuple[Entity, SearchIndexSpec]]:
        for entity in self.entities.values():
            for spec in entity.search_indexes():
                yield entity, spec

    def describe(self) -> dict[str, Any]:
        """Summarize the model, for debugging and logging."""
        return {
            name: {
                "labels": list(entity.labels),
                "attributes": {a.name: a.db_name for a in entity.attributes.values()},
                "relationships": {
                    r.name: f"{r.direction.value}:{r.type}->{r.target}"
                    for r in entity.relationships.values()
                },
                "fulltext": [i.name for i in entity.fulltext_indexes],
                "vector": [i.name for i in entity.vector_indexes],
            }
            for name, entity in self.entities.items()
        }
