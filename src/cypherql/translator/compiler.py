# -*- encoding: utf-8 -*-
"""
cypherql Query Compiler - Root fields to parameterized Cypher statements.

Each root field of an operation compiles to exactly one statement.
Compilation follows one path per request:

    Planning -> Predicate-Resolution -> Authorization-Check(before)
             -> Emit -> Authorization-Check(after, writes only)

and ends either with a CompiledStatement (Emitted) or with an exception
(Rejected): QueryValidationError for bad input, SearchConflictError for
more than one search, ForbiddenError for validate rules the caller can
never pass.

Translation Map:
    <plural>                    -> MATCH / fulltext CALL, ORDER BY, map projection
    <plural>Connection          -> MATCH, collect into edges, UNWIND page
    <plural>Aggregate           -> one CALL per aggregated value
    <fulltext query name>       -> db.index.fulltext.queryNodes
    <vector query name>         -> db.index.vector.queryNodes
    create<Plural>              -> UNWIND input, CREATE, SET
"""

import logging
from typing import Any, Mapping, Optional

from cypherql.config import CypherQLConfig
from cypherql.exceptions import QueryValidationError, SearchConflictError
from cypherql.parser.ast import FieldSelection, OperationDefinition
from cypherql.schema.model import (
    Attribute,
    AuthorizationOperation,
    Entity,
    FulltextIndex,
    RootField,
    RootFieldKind,
    Schema,
    ValidationTiming,
    VectorIndex,
    upper_first,
)
from cypherql.translator.context import Environment, QueryContext
from cypherql.translator.cypher import INDENT, and_, call_block, escape, labels_expr, map_literal, prop, quote
from cypherql.translator.projection import ProjectionBuilder, field_arguments, visible_selections
from cypherql.translator.scalars import coerce_list, coerce_scalar, inspect_value
from cypherql.translator.shaping import MapShape
from cypherql.translator.statement import RETURN_COLUMN, AccessMode, CompiledStatement

logger = logging.getLogger(__name__)

ROOT_VARIABLE = "this"

READ_ARGUMENTS = frozenset({"where", "sort", "limit", "offset", "fulltext"})
CONNECTION_ARGUMENTS = frozenset({"where", "sort", "first", "after"})
AGGREGATE_ARGUMENTS = frozenset({"where"})
FULLTEXT_ARGUMENTS = frozenset({"phrase", "where", "sort", "limit", "offset"})
VECTOR_ARGUMENTS = frozenset({"vector", "phrase", "where", "sort", "first", "after"})
CREATE_ARGUMENTS = frozenset({"input"})


class QueryCompiler:
    """
    Compiles operations against a Schema.

    The compiler is synchronous and pure: it never touches the database,
    and every request gets a fresh Environment, so one instance can serve
    concurrent requests.

    Example:
        compiler = QueryCompiler(schema)
        [statement] = compiler.compile(document.operation(), variables={"t": "Matrix"})
        statement.cypher   # "MATCH (this:Movie)\\nWHERE this.title = $param0\\n..."
        statement.params   # {"param0": "Matrix"}
    """

    def __init__(self, schema: Schema, config: Optional[CypherQLConfig] = None):
        self.schema = schema
        self.config = config or CypherQLConfig()
        self.projection = ProjectionBuilder()
        self._handlers = {
            RootFieldKind.READ: self._read,
            RootFieldKind.CONNECTION: self._connection,
            RootFieldKind.AGGREGATE: self._aggregate,
            RootFieldKind.FULLTEXT: self._fulltext,
            RootFieldKind.VECTOR: self._vector,
            RootFieldKind.CREATE: self._create,
        }

    @property
    def filters(self):
        return self.projection.filters

    @property
    def sorting(self):
        return self.projection.sorting

    @property
    def authorization(self):
        return self.projection.authorization

    def compile(
        self,
        operation: OperationDefinition,
        variables: Optional[Mapping[str, Any]] = None,
        claims: Optional[Mapping[str, Any]] = None,
    ) -> list[CompiledStatement]:
        """
        Compile every root field of an operation.

        Args:
            operation: Parsed query or mutation
            variables: Request variables
            claims: Decoded JWT claims, None for unauthenticated callers

        Returns:
            One CompiledStatement per root field, in selection order.
            __typename root fields need no statement and are skipped.

        Raises:
            QueryValidationError: If the request is invalid
            ForbiddenError: If authorization rejects the caller outright
        """
        effective = self.variables(operation, variables or {})
        statements = []
        for selection in visible_selections(operation.selections, effective):
            if selection.name == "__typename":
                continue
            statements.append(self.compile_field(operation.operation, selection, effective, claims))
        return statements

    def variables(self, operation: OperationDefinition, provided: Mapping[str, Any]) -> dict[str, Any]:
        """
        Merge provided variables with declared defaults.

        Raises:
            QueryValidationError: If a required variable is missing
        """
        values = dict(provided)
        for name, definition in operation.variable_definitions.items():
            if name in provided:
                continue
            if definition.has_default:
                values[name] = definition.default
            elif definition.type.required:
                raise QueryValidationError(
                    f'Variable "${name}" of required type "{definition.type}" was not provided.'
                )
        return values

    def compile_field(
        self,
        operation_type: str,
        selection: FieldSelection,
        variables: Mapping[str, Any],
        claims: Optional[Mapping[str, Any]] = None,
    ) -> CompiledStatement:
        """
        Compile one root field into one statement.

        Raises:
            QueryValidationError: If the field is unknown or its input invalid
        """
        root = self.schema.root_field(operation_type, selection.name)
        if root is None:
            type_name = "Mutation" if operation_type == "mutation" else "Query"
            raise QueryValidationError(f"Cannot query field '{selection.name}' on type '{type_name}'")

        context = QueryContext(
            schema=self.schema,
            env=Environment(),
            variables=variables,
            claims=claims,
        )
        entity = self.schema.entity(root.entity)
        lines, shape, multiple_rows = self._handlers[root.kind](root, entity, selection, context)

        statement = CompiledStatement(
            cypher="\n".join(lines),
            params=context.env.params,
            response_key=selection.response_key,
            kind=root.kind,
            access_mode=AccessMode.WRITE if root.kind == RootFieldKind.CREATE else AccessMode.READ,
            multiple_rows=multiple_rows,
            shape=shape,
        )
        logger.debug("Compiled %s (%s):\n%s", selection.name, root.kind.value, statement.cypher)
        logger.debug("Parameters: %s", ", ".join(statement.params) or "none")
        return statement

    # --- Reads ---

    def _read(self, root: RootField, entity: Entity, selection: FieldSelection, context: QueryContext):
        args = field_arguments(selection, context, READ_ARGUMENTS)
        node = context.push(entity, ROOT_VARIABLE, operation=AuthorizationOperation.READ)
        env = context.env

        lines = []
        label_check = None
        fulltext = args.get("fulltext")
        if fulltext is not None:
            index, fulltext_args = self._single_fulltext(entity, fulltext)
            unknown = set(fulltext_args) - {"phrase"}
            if unknown:
                raise QueryValidationError(f"Unknown argument '{sorted(unknown)[0]}' in fulltext '{index.name}'")
            phrase = self._phrase(fulltext_args.get("phrase"), index.name)
            score = env.variable("var")
            lines.append(
                f"CALL db.index.fulltext.queryNodes({quote(index.name)}, {env.param(phrase)}) "
                f"YIELD node AS {ROOT_VARIABLE}, score AS {score}"
            )
            label_check = f"{env.param(entity.primary_label)} IN labels({ROOT_VARIABLE})"
        else:
            lines.append(f"MATCH ({ROOT_VARIABLE}{labels_expr(entity.labels)})")

        lines += self.projection.where_lines(
            node, label_check, self.filters.create_predicate(args.get("where"), node)
        )
        plan = self.sorting.plan(args.get("sort"), node)
        pagination = self.sorting.pagination(entity, args.get("limit"), args.get("offset"))
        lines += self.sorting.clauses(plan, pagination, env)

        projection = self.projection.project(selection.selections, node)
        lines += projection.lines()
        lines.append(f"RETURN {projection.render(ROOT_VARIABLE)} AS {RETURN_COLUMN}")
        return lines, projection.shape, True

    def _single_fulltext(self, entity: Entity, fulltext: Any) -> tuple[FulltextIndex, dict]:
        if not isinstance(fulltext, dict) or not fulltext:
            raise QueryValidationError(f"Invalid fulltext argument: {inspect_value(fulltext)}")
        if len(fulltext) > 1:
            raise SearchConflictError()
        (name, arguments), = fulltext.items()
        index = entity.fulltext_index(name)
        if index is None:
            raise QueryValidationError(f"Unknown @fulltext index '{name}' on '{entity.name}'")
        if not isinstance(arguments, dict):
            raise QueryValidationError(f"Invalid arguments for fulltext '{name}': {inspect_value(arguments)}")
        return index, arguments

    def _phrase(self, phrase: Any, index_name: str) -> str:
        if phrase is None:
            raise QueryValidationError(f"Search on '{index_name}' requires a 'phrase'")
        return coerce_scalar("String", phrase)

    # --- Connections ---

    def _connection(self, root: RootField, entity: Entity, selection: FieldSelection, context: QueryContext):
        args = field_arguments(selection, context, CONNECTION_ARGUMENTS)
        node = context.push(entity, context.env.variable("this"), operation=AuthorizationOperation.READ)

        lines = [f"MATCH ({node.target}{labels_expr(entity.labels)})"]
        lines += self.projection.where_lines(node, self.filters.create_predicate(args.get("where"), node))
        plan = self.sorting.plan(args.get("sort"), node)
        pagination = self.sorting.connection_window(entity, args.get("first"), args.get("after"))

        tail, expression, shape = self.projection.connection(
            selection, node, plan, pagination,
            typename=f"{upper_first(entity.plural)}Connection",
            edge_typename=f"{entity.name}Edge",
        )
        lines += tail
        lines.append(f"RETURN {expression} AS {RETURN_COLUMN}")
        return lines, shape, False

    # --- Aggregates ---

    def _aggregate(self, root: RootField, entity: Entity, selection: FieldSelection, context: QueryContext):
        args = field_arguments(selection, context, AGGREGATE_ARGUMENTS)
        node = context.push(entity, ROOT_VARIABLE, operation=AuthorizationOperation.AGGREGATE)

        match = [f"MATCH ({ROOT_VARIABLE}{labels_expr(entity.labels)})"]
        match += self.projection.where_lines(node, self.filters.create_predicate(args.get("where"), node))
        expression, blocks = self.projection.aggregation(
            selection, node, match, imports=[], typename=f"{entity.name}AggregateSelection"
        )
        lines = [line for block in blocks for line in block]
        lines.append(f"RETURN {expression} AS {RETURN_COLUMN}")
        return lines, None, False

    # --- Searches ---

    def _search_where(self, where: Any, node_key: str) -> tuple[Any, Any]:
        if where is None:
            return None, None
        if not isinstance(where, dict):
            raise QueryValidationError(f"Invalid search filter: {inspect_value(where)}")
        unknown = set(where) - {"score", node_key}
        if unknown:
            raise QueryValidationError(f"Unknown field '{sorted(unknown)[0]}' in search filter")
        return where.get(node_key), where.get("score")

    def _fulltext(self, root: RootField, entity: Entity, selection: FieldSelection, context: QueryContext):
        args = field_arguments(selection, context, FULLTEXT_ARGUMENTS)
        index = root.index
        env = context.env

        phrase = self._phrase(args.get("phrase"), index.name)
        variable = env.variable("this")
        score = env.variable("var")
        node = context.push(entity, variable, operation=AuthorizationOperation.READ, score=score)

        lines = [
            f"CALL db.index.fulltext.queryNodes({quote(index.name)}, {env.param(phrase)}) "
            f"YIELD node AS {variable}, score AS {score}"
        ]
        node_where, score_where = self._search_where(args.get("where"), entity.key)
        lines += self.projection.where_lines(
            node,
            f"{env.param(entity.primary_label)} IN labels({variable})",
            self.filters.create_predicate(node_where, node),
            self.filters.create_score_predicate(score_where, node),
        )
        plan = self.sorting.plan(args.get("sort"), node, score_key="score", node_key=entity.key)
        pagination = self.sorting.pagination(entity, args.get("limit"), args.get("offset"))
        lines += self.sorting.clauses(plan, pagination, env)

        items = []
        children = {}
        for sub in visible_selections(selection.selections, context.variables):
            if sub.name == "score":
                items.append((sub.response_key, score))
            elif sub.name == entity.key:
                projection = self.projection.project(sub.selections, node)
                lines += projection.lines()
                items.append((sub.response_key, projection.render(variable)))
                if projection.shape is not None:
                    children[sub.response_key] = projection.shape
            elif sub.name == "__typename":
                items.append((sub.response_key, quote(f"{entity.name}FulltextResult")))
            else:
                raise QueryValidationError(f"Unknown field '{sub.name}' on '{entity.name}FulltextResult'")

        lines.append(f"RETURN {map_literal(items)} AS {RETURN_COLUMN}")
        return lines, MapShape(children=children) if children else None, True

    def _vector(self, root: RootField, entity: Entity, selection: FieldSelection, context: QueryContext):
        args = field_arguments(selection, context, VECTOR_ARGUMENTS)
        index: VectorIndex = root.index
        env = context.env

        vector, phrase = args.get("vector"), args.get("phrase")
        if (vector is None) == (phrase is None):
            raise QueryValidationError(f"Search on '{index.name}' requires exactly one of 'vector' or 'phrase'")

        pagination = self.sorting.connection_window(entity, args.get("first"), args.get("after"))
        k = pagination.offset + (
            pagination.limit if pagination.limit is not None else self.config.vector_default_k
        )

        lines = []
        if vector is not None:
            values = coerce_list("Float", vector)
            if not values:
                raise QueryValidationError(f"Search on '{index.name}' requires a non-empty vector")
            if index.dimensions is not None and len(values) != index.dimensions:
                raise QueryValidationError(
                    f"Vector for index '{index.name}' must have {index.dimensions} dimensions, got {len(values)}"
                )
            query = env.param(values)
        else:
            phrase = coerce_scalar("String", phrase)
            if index.provider is None:
                raise QueryValidationError(f"@vector index '{index.name}' has no provider for phrase searches")
            settings = self.config.vector_providers.get(index.provider)
            if settings is None:
                raise QueryValidationError(f"No settings configured for vector provider '{index.provider}'")
            query = env.variable("var")
            lines.append(
                f"WITH genai.vector.encode({env.param(phrase)}, {quote(index.provider)}, "
                f"{env.param(dict(settings))}) AS {query}"
            )

        variable = env.variable("this")
        score = env.variable("var")
        node = context.push(entity, variable, operation=AuthorizationOperation.READ, score=score)
        lines.append(
            f"CALL db.index.vector.queryNodes({quote(index.name)}, {k}, {query}) "
            f"YIELD node AS {variable}, score AS {score}"
        )
        node_where, score_where = self._search_where(args.get("where"), "node")
        lines += self.projection.where_lines(
            node,
            f"{env.param(entity.primary_label)} IN labels({variable})",
            self.filters.create_predicate(node_where, node),
            self.filters.create_score_predicate(score_where, node),
        )
        plan = self.sorting.plan(args.get("sort"), node, score_key="score", node_key="node")

        tail, expression, shape = self.projection.connection(
            selection, node, plan, pagination,
            typename=f"{upper_first(entity.plural)}VectorConnection",
            edge_typename=f"{entity.name}VectorEdge",
            score=score,
        )
        lines += tail
        lines.append(f"RETURN {expression} AS {RETURN_COLUMN}")
        return lines, shape, False

    # --- Mutations ---

    def _create(self, root: RootField, entity: Entity, selection: FieldSelection, context: QueryContext):
        args = field_arguments(selection, context, CREATE_ARGUMENTS)
        env = context.env
        inputs = args.get("input")
        if not isinstance(inputs, list) or not all(isinstance(item, dict) for item in inputs):
            raise QueryValidationError(f"Argument 'input' of '{selection.name}' expects a list of objects")

        create = context.push(entity, ROOT_VARIABLE, operation=AuthorizationOperation.CREATE)
        self.authorization.validate_predicate(create, ValidationTiming.BEFORE, node_available=False)
        rows = [self._create_row(entity, item, context) for item in inputs]

        row = env.variable("var")
        variable = env.variable("this")
        assignments = []
        for attribute in entity.attributes.values():
            if not attribute.autogenerate and not any(attribute.db_name in r for r in rows):
                continue
            value = f"{row}.{escape(attribute.db_name)}"
            if attribute.autogenerate:
                value = f"coalesce({value}, randomUUID())"
            assignments.append(f"{prop(variable, attribute.db_name)} = {value}")

        body = [f"CREATE ({variable}{labels_expr(entity.labels)})"]
        if assignments:
            body.append("SET")
            body += [INDENT + a + ("," if i < len(assignments) - 1 else "") for i, a in enumerate(assignments)]
        body.append(f"RETURN {variable}")
        lines = [f"UNWIND {env.param(rows)} AS {row}"] + call_block(body, imports=[row])

        created = context.push(entity, variable, operation=AuthorizationOperation.CREATE)
        validate = and_(*self.authorization.create_checks(created))
        if validate:
            lines += ["WITH *", f"WHERE {validate}"]

        read = context.push(entity, variable, operation=AuthorizationOperation.READ)
        collected = []
        items = []
        children = {}
        for sub in visible_selections(selection.selections, context.variables):
            if sub.name == entity.plural:
                projection = self.projection.project(sub.selections, read)
                lines += projection.lines()
                result = env.variable("var")
                collected.append(f"collect({projection.render(variable)}) AS {result}")
                items.append((sub.response_key, result))
                if projection.shape is not None:
                    children[sub.response_key] = projection.shape
            elif sub.name == "__typename":
                items.append((sub.response_key, quote(f"Create{upper_first(entity.plural)}MutationResponse")))
            else:
                raise QueryValidationError(
                    f"Unknown field '{sub.name}' on 'Create{upper_first(entity.plural)}MutationResponse'"
                )

        if not collected:
            collected.append(f"count({variable}) AS {env.variable('var')}")
        lines.append("WITH " + ", ".join(collected))
        lines.append(f"RETURN {map_literal(items)} AS {RETURN_COLUMN}")
        logger.debug("Create on %s with %d input rows", entity.name, len(rows))
        return lines, MapShape(children=children) if children else None, False

    def _create_row(self, entity: Entity, item: dict, context: QueryContext) -> dict[str, Any]:
        row = {}
        for key, value in item.items():
            attribute = entity.attribute(key)
            if attribute is None:
                if entity.relationship(key) is not None:
                    raise QueryValidationError(f"Nested mutations on '{entity.name}.{key}' are not supported")
                raise QueryValidationError(f"Unknown field '{key}' on '{entity.name}'")
            row[attribute.db_name] = self._coerce_input(attribute, value, context)

        for attribute in entity.attributes.values():
            if attribute.required and not attribute.autogenerate and row.get(attribute.db_name) is None:
                raise QueryValidationError(
                    f"Field '{attribute.name}' of required type '{_type_label(attribute)}' was not provided"
                )
        return row

    def _coerce_input(self, attribute: Attribute, value: Any, context: QueryContext) -> Any:
        enum_values = context.schema.enums.get(attribute.type_name) if attribute.is_enum else None
        if attribute.is_list:
            return coerce_list(attribute.type_name, value, enum_values)
        return coerce_scalar(attribute.type_name, value, enum_values)


def _type_label(attribute: Attribute) -> str:
    label = f"[{attribute.type_name}]" if attribute.is_list else attribute.type_name
    return f"{label}!" if attribute.required else label
