# -*- encoding: utf-8 -*-
"""
cypherql Schema Builder - Turns parsed type definitions into the Metadata Model.

Directive vocabulary:
    @node(labels: [...])                                   on types
    @plural(value: "...")                                  on types
    @limit(default: n, max: n)                             on types
    @fulltext(indexes: [{indexName, fields, queryName}])   on types
    @vector(indexes: [{indexName, embeddingProperty, dimensions,
                       similarityFunction, queryName, provider}])
    @authorization(filter: [...], validate: [...])         on types
    @alias(property: "...")                                on fields
    @unique(constraintName: "...")                         on fields
    @id(autogenerate: true, unique: true)                  on fields
    @relationship(type, direction, queryDirection)         on fields
"""

import logging
from typing import Any, Optional

from cypherql.exceptions import SchemaValidationError
from cypherql.parser.ast import Document, FieldDefinition, TypeDefinition
from cypherql.parser.parser import GraphQLParser
from cypherql.schema.model import (
    SCALAR_TYPES,
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
    Schema,
    UniquenessKind,
    UniquenessSpec,
    ValidateRule,
    ValidationTiming,
    VectorIndex,
    pluralize,
)

logger = logging.getLogger(__name__)

TYPE_DIRECTIVES = frozenset({"node", "plural", "limit", "fulltext", "vector", "authorization"})
FIELD_DIRECTIVES = frozenset({"alias", "unique", "id", "relationship"})
RESERVED_TYPE_NAMES = frozenset({"Query", "Mutation", "Subscription"})
SIMILARITY_FUNCTIONS = frozenset({"cosine", "euclidean"})

_QUERY_DIRECTIONS = {
    "DIRECTED": (QueryDirection.DIRECTED, False),
    "DEFAULT_DIRECTED": (QueryDirection.DIRECTED, False),
    "DIRECTED_ONLY": (QueryDirection.DIRECTED, True),
    "UNDIRECTED": (QueryDirection.UNDIRECTED, False),
    "DEFAULT_UNDIRECTED": (QueryDirection.UNDIRECTED, False),
    "UNDIRECTED_ONLY": (QueryDirection.UNDIRECTED, True),
}


class SchemaBuilder:
    """
    Builds and validates a Schema from a parsed Document.

    Example:
        schema = SchemaBuilder().build(GraphQLParser().parse_schema(type_defs))
    """

    def build(self, document: Document) -> Schema:
        """
        Build the Metadata Model.

        Args:
            document: Parsed type definitions

        Returns:
            A read-only Schema

        Raises:
            SchemaValidationError: If any directive is used incorrectly
        """
        enums = {}
        for enum in document.enums:
            if enum.name in enums:
                raise SchemaValidationError(f"Enum '{enum.name}' is declared more than once")
            enums[enum.name] = tuple(enum.values)

        type_names = set()
        for t in document.types:
            if t.name in RESERVED_TYPE_NAMES:
                raise SchemaValidationError(f"Custom root type '{t.name}' is not supported")
            if t.name in type_names or t.name in enums:
                raise SchemaValidationError(f"Type '{t.name}' is declared more than once")
            type_names.add(t.name)

        if not type_names:
            raise SchemaValidationError("Type definitions declare no types")

        entities = {}
        for t in document.types:
            entities[t.name] = self._build_entity(t, type_names, enums)

        schema = Schema(entities=entities, enums=enums)
        self._check_names(schema)
        logger.debug("Built schema with %d entities: %s", len(entities), ", ".join(entities))
        return schema

    # --- Entities ---

    def _build_entity(self, t: TypeDefinition, type_names: set, enums: dict) -> Entity:
        for d in t.directives:
            if d.name not in TYPE_DIRECTIVES:
                raise SchemaValidationError(f"Unknown directive '@{d.name}' on type '{t.name}'")

        attributes = {}
        relationships = {}
        uniqueness = []
        db_names = {}

        for f in t.fields:
            for d in f.directives:
                if d.name not in FIELD_DIRECTIVES:
                    raise SchemaValidationError(
                        f"Unknown directive '@{d.name}' on field '{t.name}.{f.name}'"
                    )
            if f.name in attributes or f.name in relationships:
                raise SchemaValidationError(f"Field '{t.name}.{f.name}' is declared more than once")

            if f.type.name in type_names:
                relationships[f.name] = self._build_relationship(t, f)
                continue

            if f.type.name not in SCALAR_TYPES and f.type.name not in enums:
                raise SchemaValidationError(f"Unknown type '{f.type.name}' for field '{t.name}.{f.name}'")

            attribute, spec = self._build_attribute(t, f, is_enum=f.type.name in enums)
            if attribute.db_name in db_names:
                raise SchemaValidationError(
                    f"Fields '{t.name}.{db_names[attribute.db_name]}' and '{t.name}.{f.name}' "
                    f"are both stored as property '{attribute.db_name}'"
                )
            db_names[attribute.db_name] = f.name
            attributes[f.name] = attribute
            if spec is not None:
                uniqueness.append(spec)

        limit_default, limit_max = self._limit(t)
        plural_directive = t.directive("plural")
        plural = pluralize(t.name)
        if plural_directive is not None:
            plural = _require_str(plural_directive.arguments.get("value"), f"@plural on '{t.name}' requires 'value'")

        return Entity(
            name=t.name,
            labels=self._labels(t),
            attributes=attributes,
            relationships=relationships,
            fulltext_indexes=self._fulltext(t, attributes),
            vector_indexes=self._vector(t),
            uniqueness=tuple(uniqueness),
            authorization=self._authorization(t),
            plural=plural,
            limit_default=limit_default,
            limit_max=limit_max,
        )

    def _labels(self, t: TypeDefinition) -> tuple[str, ...]:
        d = t.directive("node")
        if d is None or "labels" not in d.arguments:
            return (t.name,)
        labels = d.arguments["labels"]
        if isinstance(labels, str):
            labels = [labels]
        if not isinstance(labels, list) or not labels or not all(isinstance(l, str) and l for l in labels):
            raise SchemaValidationError(f"@node on '{t.name}' requires a non-empty list of labels")
        return tuple(str(l) for l in labels)

    def _build_attribute(self, t: TypeDefinition, f: FieldDefinition, is_enum: bool = False):
        if f.directive("relationship") is not None:
            raise SchemaValidationError(
                f"@relationship on '{t.name}.{f.name}' must target an object type, not '{f.type.name}'"
            )

        db_name = f.name
        alias = f.directive("alias")
        if alias is not None:
            db_name = _require_str(
                alias.arguments.get("property"), f"@alias on '{t.name}.{f.name}' requires 'property'"
            )

        spec = None
        autogenerate = False
        unique = f.directive("unique")
        if unique is not None:
            name = unique.arguments.get("constraintName")
            spec = UniquenessSpec(t.name, f.name, UniquenessKind.UNIQUE, str(name) if name else None)

        identity = f.directive("id")
        if identity is not None:
            autogenerate = bool(identity.arguments.get("autogenerate", True))
            if autogenerate and (f.type.name != "ID" or f.type.is_list):
                raise SchemaValidationError(
                    f"@id(autogenerate: true) on '{t.name}.{f.name}' requires type ID"
                )
            if spec is None and identity.arguments.get("unique", True):
                spec = UniquenessSpec(t.name, f.name, UniquenessKind.IDENTITY)

        attribute = Attribute(
            name=f.name,
            db_name=db_name,
            type_name=f.type.name,
            is_list=f.type.is_list,
            required=f.type.required,
            autogenerate=autogenerate,
            is_enum=is_enum,
        )
        return attribute, spec

    def _build_relationship(self, t: TypeDefinition, f: FieldDefinition) -> Relationship:
        d = f.directive("relationship")
        if d is None:
            raise SchemaValidationError(
                f"Field '{t.name}.{f.name}' references type '{f.type.name}' without @relationship"
            )
        for other in ("alias", "unique", "id"):
            if f.directive(other) is not None:
                raise SchemaValidationError(f"@{other} cannot be used on relationship field '{t.name}.{f.name}'")

        rel_type = _require_str(d.arguments.get("type"), f"@relationship on '{t.name}.{f.name}' requires 'type'")
        direction = d.arguments.get("direction")
        if direction not in ("IN", "OUT"):
            raise SchemaValidationError(
                f"@relationship on '{t.name}.{f.name}' requires direction IN or OUT"
            )
        query_direction = d.arguments.get("queryDirection", "DIRECTED")
        if query_direction not in _QUERY_DIRECTIONS:
            raise SchemaValidationError(
                f"Invalid queryDirection '{query_direction}' on '{t.name}.{f.name}'"
            )

        query_direction, fixed_direction = _QUERY_DIRECTIONS[query_direction]
        return Relationship(
            name=f.name,
            type=rel_type,
            direction=RelationshipDirection(str(direction)),
            target=f.type.name,
            is_list=f.type.is_list,
            required=f.type.required,
            query_direction=query_direction,
            fixed_direction=fixed_direction,
        )

    def _limit(self, t: TypeDefinition) -> tuple[Optional[int], Optional[int]]:
        d = t.directive("limit")
        if d is None:
            return None, None
        default = d.arguments.get("default")
        maximum = d.arguments.get("max")
        for label, value in (("default", default), ("max", maximum)):
            if value is not None and (not isinstance(value, int) or isinstance(value, bool) or value <= 0):
                raise SchemaValidationError(f"@limit {label} on '{t.name}' must be a positive integer")
        if default is not None and maximum is not None and default > maximum:
            raise SchemaValidationError(f"@limit default on '{t.name}' must not exceed max")
        return default, maximum

    # --- Search indexes ---

    def _index_specs(self, t: TypeDefinition, directive: str) -> list[dict]:
        d = t.directive(directive)
        if d is None:
            return []
        indexes = d.arguments.get("indexes")
        if not isinstance(indexes, list) or not indexes:
            raise SchemaValidationError(f"@{directive} on '{t.name}' requires a non-empty 'indexes' list")
        for spec in indexes:
            if not isinstance(spec, dict):
                raise SchemaValidationError(f"@{directive} indexes on '{t.name}' must be objects")
        return indexes

    def _fulltext(self, t: TypeDefinition, attributes: dict) -> tuple[FulltextIndex, ...]:
        result = []
        for spec in self._index_specs(t, "fulltext"):
            name = spec.get("indexName") or spec.get("name")
            name = _require_str(name, f"@fulltext index on '{t.name}' requires 'indexName'")
            fields = spec.get("fields")
            if not isinstance(fields, list) or not fields:
                raise SchemaValidationError(
                    f"@fulltext index '{name}' on '{t.name}' must list at least one field"
                )
            for field_name in fields:
                attribute = attributes.get(field_name)
                if attribute is None:
                    raise SchemaValidationError(
                        f"@fulltext index '{name}' on '{t.name}' references unknown field '{field_name}'"
                    )
                if attribute.type_name != "String" or attribute.is_list:
                    raise SchemaValidationError(
                        f"@fulltext index '{name}' on '{t.name}' field '{field_name}' must be of type String"
                    )
            query_name = spec.get("queryName")
            result.append(FulltextIndex(
                name=name,
                fields=tuple(str(f) for f in fields),
                query_name=str(query_name) if query_name else None,
            ))
        return tuple(result)

    def _vector(self, t: TypeDefinition) -> tuple[VectorIndex, ...]:
        result = []
        for spec in self._index_specs(t, "vector"):
            name = _require_str(spec.get("indexName"), f"@vector index on '{t.name}' requires 'indexName'")
            embedding = _require_str(
                spec.get("embeddingProperty"),
                f"@vector index '{name}' on '{t.name}' requires 'embeddingProperty'",
            )
            dimensions = spec.get("dimensions")
            if dimensions is not None and (
                not isinstance(dimensions, int) or isinstance(dimensions, bool) or dimensions <= 0
            ):
                raise SchemaValidationError(
                    f"@vector index '{name}' on '{t.name}' dimensions must be a positive integer"
                )
            similarity = str(spec.get("similarityFunction") or "cosine").lower()
            if similarity not in SIMILARITY_FUNCTIONS:
                raise SchemaValidationError(
                    f"@vector index '{name}' on '{t.name}' has unknown similarityFunction '{similarity}'"
                )
            query_name = spec.get("queryName")
            provider = spec.get("provider")
            result.append(VectorIndex(
                name=name,
                embedding_property=embedding,
                dimensions=dimensions,
                similarity_function=similarity,
                query_name=str(query_name) if query_name else None,
                provider=str(provider) if provider else None,
            ))
        return tuple(result)

    # --- Authorization ---

    def _authorization(self, t: TypeDefinition) -> AuthorizationAnnotation:
        d = t.directive("authorization")
        if d is None:
            return AuthorizationAnnotation()
        unknown = set(d.arguments) - {"filter", "validate"}
        if unknown:
            raise SchemaValidationError(
                f"@authorization on '{t.name}' has unknown argument '{sorted(unknown)[0]}'"
            )

        filters = []
        for rule in _rules(d.arguments.get("filter"), t.name):
            operations = _operations(rule.get("operations"), t.name)
            if AuthorizationOperation.CREATE in operations:
                raise SchemaValidationError(
                    f"@authorization filter rules on '{t.name}' cannot apply to CREATE"
                )
            filters.append(FilterRule(
                where=_where(rule.get("where"), t.name),
                operations=operations,
                require_authentication=bool(rule.get("requireAuthentication", True)),
            ))

        validates = []
        for rule in _rules(d.arguments.get("validate"), t.name):
            when = rule.get("when")
            timings = frozenset(ValidationTiming)
            if when is not None:
                try:
                    timings = frozenset(ValidationTiming(str(w)) for w in _as_list(when))
                except ValueError:
                    raise SchemaValidationError(
                        f"@authorization validate rule on '{t.name}' has invalid 'when' {when!r}"
                    ) from None
            validates.append(ValidateRule(
                where=_where(rule.get("where"), t.name),
                operations=_operations(rule.get("operations"), t.name),
                when=timings,
                require_authentication=bool(rule.get("requireAuthentication", True)),
            ))

        return AuthorizationAnnotation(filter=tuple(filters), validate=tuple(validates))

    # --- Cross-entity checks ---

    def _check_names(self, schema: Schema) -> None:
        index_names = {}
        for entity, spec in schema.search_index_specs():
            if spec.name in index_names:
                raise SchemaValidationError(
                    f"Index name '{spec.name}' is declared on both '{index_names[spec.name]}' and '{entity.name}'"
                )
            index_names[spec.name] = entity.name

        plurals = {}
        for entity in schema.entities.values():
            if entity.plural in plurals:
                raise SchemaValidationError(
                    f"Types '{plurals[entity.plural]}' and '{entity.name}' share the plural '{entity.plural}'"
                )
            plurals[entity.plural] = entity.name

        expected = sum(
            3 + len(e.fulltext_indexes) + len(e.vector_indexes) for e in schema.entities.values()
        )
        queries = [key for key in schema.root_fields() if key[0] == "query"]
        if len(queries) != expected:
            raise SchemaValidationError("Search query names collide with other root fields")


def _require_str(value: Any, message: str) -> str:
    if not isinstance(value, str) or not value:
        raise SchemaValidationError(message)
    return str(value)


def _as_list(value: Any) -> list:
    if value is None:
        return []
    if isinstance(value, list):
        return value
    return [value]


def _rules(value: Any, type_name: str) -> list[dict]:
    rules = _as_list(value)
    for rule in rules:
        if not isinstance(rule, dict):
            raise SchemaValidationError(f"@authorization rules on '{type_name}' must be objects")
    return rules


def _operations(value: Any, type_name: str) -> frozenset:
    try:
        return frozenset(AuthorizationOperation(str(op)) for op in _as_list(value))
    except ValueError:
        raise SchemaValidationError(
            f"@authorization rule on '{type_name}' has invalid operations {value!r}"
        ) from None


def _where(value: Any, type_name: str) -> AuthorizationWhere:
    if not isinstance(value, dict) or not value:
        raise SchemaValidationError(f"@authorization rule on '{type_name}' requires a 'where' object")
    unknown = set(value) - {"node", "jwt"}
    if unknown:
        raise SchemaValidationError(
            f"@authorization where on '{type_name}' has unknown key '{sorted(unknown)[0]}'"
        )
    return AuthorizationWhere(node=value.get("node"), jwt=value.get("jwt"))


def build_schema(type_defs: str, parser: Optional[GraphQLParser] = None) -> Schema:
    """
    Parse and build a Schema in one step.

    Args:
        type_defs: Type definitions text
        parser: Optional parser instance to reuse

    Returns:
        The built Schema
    """
    parser = parser or GraphQLParser()
    return SchemaBuilder().build(parser.parse_schema(type_defs))
