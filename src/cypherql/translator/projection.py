# -*- encoding: utf-8 -*-
"""
cypherql Projection Builder - Selection sets to map projections and subqueries.

Scalar fields become map projection items. Relationship fields, nested
connections and nested aggregates each compile to an independent CALL
subquery importing the parent node, with their own filter, sort and
paging, to any depth the request asks for:

    CALL {
        WITH this
        MATCH (this)<-[:ACTED_IN]-(this0:Actor)
        WHERE this0.name = $param0
        RETURN collect(this0 { .name }) AS var1
    }
    RETURN this { .title, actors: var1 } AS this
"""

from dataclasses import dataclass, field
from typing import Any, Optional

from cypherql.exceptions import QueryValidationError
from cypherql.parser.ast import FieldSelection
from cypherql.parser.parser import resolve_value
from cypherql.schema.model import (
    Attribute,
    AuthorizationOperation,
    Entity,
    Relationship,
    ValidationTiming,
    upper_first,
)
from cypherql.translator.authorization import AuthorizationInjector
from cypherql.translator.context import QueryContext
from cypherql.translator.cypher import and_, call_block, map_literal, map_projection, or_, prop, quote
from cypherql.translator.filters import FilterBuilder, relationship_pattern
from cypherql.translator.scalars import inspect_value
from cypherql.translator.shaping import ConnectionShape, EdgeShape, MapShape, Shape
from cypherql.translator.sorting import Pagination, SortPlan, SortPlanner

NUMERIC_AGGREGATIONS = {"min": "min", "max": "max", "average": "avg", "sum": "sum"}
PAGE_INFO_FIELDS = frozenset({"hasNextPage", "hasPreviousPage", "startCursor", "endCursor", "__typename"})


def visible_selections(selections: list[FieldSelection], variables: dict) -> list[FieldSelection]:
    """
    Apply @include/@skip and reject duplicate response keys.

    Raises:
        QueryValidationError: On unknown directives or conflicting keys
    """
    result = []
    keys = set()
    for selection in selections:
        include = True
        for d in selection.directives:
            if d.name not in ("include", "skip"):
                raise QueryValidationError(f"Unknown directive '@{d.name}' on field '{selection.name}'")
            condition = resolve_value(d.arguments.get("if"), variables)
            if not isinstance(condition, bool):
                raise QueryValidationError(f"Directive '@{d.name}' requires a Boolean 'if' argument")
            if (d.name == "include") != condition:
                include = False
        if not include:
            continue
        if selection.response_key in keys:
            raise QueryValidationError(f"Field '{selection.response_key}' is selected more than once")
        keys.add(selection.response_key)
        result.append(selection)
    return result


def field_arguments(selection: FieldSelection, context: QueryContext, allowed: frozenset) -> dict[str, Any]:
    """
    Resolve the arguments of a selection against the request variables.

    Raises:
        QueryValidationError: On arguments the field does not accept
    """
    for name in selection.arguments:
        if name not in allowed:
            raise QueryValidationError(f"Unknown argument '{name}' on field '{selection.name}'")
    return {name: resolve_value(value, context.variables) for name, value in selection.arguments.items()}


@dataclass
class Projection:
    """
    Compiled selection set of one node variable.

    Attributes:
        subqueries: CALL blocks that must run before the projection
        items: (response key, expression) pairs of the map projection
        shape: Post-processing for the projected map, None when not needed
    """
    subqueries: list[list[str]] = field(default_factory=list)
    items: list[tuple[str, str]] = field(default_factory=list)
    shape: Optional[MapShape] = None

    def lines(self) -> list[str]:
        return [line for block in self.subqueries for line in block]

    def render(self, variable: str) -> str:
        return map_projection(variable, self.items)


class ProjectionBuilder:
    """
    Compiles selection sets, recursing into relationships.

    Holds the stateless builders every part of a statement shares: the
    filter builder, the authorization injector and the sort planner.
    """

    def __init__(self):
        self.filters = FilterBuilder()
        self.authorization = AuthorizationInjector()
        self.sorting = SortPlanner()

    # --- Shared clauses ---

    def where_lines(self, context: QueryContext, *predicates: Optional[str]) -> list[str]:
        """
        Render the WHERE for a matched node, adding authorization.

        Filter rules are ANDed into the predicates; BEFORE validate rules
        follow as a separate WITH * WHERE so they see every matched row.
        """
        predicate = and_(*predicates, self.authorization.filter_predicate(context))
        lines = [f"WHERE {predicate}"] if predicate else []
        validate = self.authorization.validate_predicate(context, ValidationTiming.BEFORE)
        if validate:
            lines.extend(["WITH *", f"WHERE {validate}"])
        return lines

    # --- Selection sets ---

    def project(self, selections: list[FieldSelection], context: QueryContext) -> Projection:
        """
        Compile the selection set of context.entity at context.target.

        Raises:
            QueryValidationError: On unknown fields or invalid arguments
        """
        entity = context.entity
        projection = Projection()
        children: dict[str, Shape] = {}

        for selection in visible_selections(selections, context.variables):
            key = selection.response_key
            if selection.name == "__typename":
                projection.items.append((key, quote(entity.name)))
                continue

            attribute = entity.attribute(selection.name)
            if attribute is not None:
                self._check_leaf(selection, attribute)
                projection.items.append((key, prop(context.target, attribute.db_name)))
                continue

            relationship = entity.relationship(selection.name)
            if relationship is not None:
                block, result, shape = self._nested_read(relationship, selection, context)
            elif selection.name.endswith("Connection") and entity.relationship(selection.name[:-10]):
                relationship = entity.relationship(selection.name[:-10])
                block, result, shape = self._nested_connection(relationship, selection, context)
            elif selection.name.endswith("Aggregate") and entity.relationship(selection.name[:-9]):
                relationship = entity.relationship(selection.name[:-9])
                block, result, shape = self._nested_aggregate(relationship, selection, context)
            else:
                raise QueryValidationError(f"Unknown field '{selection.name}' on '{entity.name}'")

            projection.subqueries.append(block)
            projection.items.append((key, result))
            if shape is not None:
                children[key] = shape

        if children:
            projection.shape = MapShape(children=children)
        return projection

    def _check_leaf(self, selection: FieldSelection, attribute: Attribute) -> None:
        if selection.arguments:
            raise QueryValidationError(f"Field '{attribute.name}' does not accept arguments")
        if selection.selections:
            raise QueryValidationError(f"Field '{attribute.name}' of type '{attribute.type_name}' has no subfields")

    def _related(
        self, relationship: Relationship, context: QueryContext, directed: Any, operation: AuthorizationOperation
    ) -> tuple[QueryContext, str]:
        if directed is not None and not isinstance(directed, bool):
            raise QueryValidationError(f"Argument 'directed' expects a Boolean, got {inspect_value(directed)}")
        if relationship.fixed_direction and directed is not None and directed != relationship.is_directed:
            raise QueryValidationError(
                f"Relationship '{relationship.name}' only supports "
                f"{'directed' if relationship.is_directed else 'undirected'} traversal"
            )
        target = context.schema.entity(relationship.target)
        related = context.env.variable("this")
        nested = context.push(target, related, operation=operation)
        pattern = relationship_pattern(context.target, relationship, related, target.labels, directed=directed)
        return nested, pattern

    # --- Nested reads ---

    def _nested_read(
        self, relationship: Relationship, selection: FieldSelection, context: QueryContext
    ) -> tuple[list[str], str, Optional[Shape]]:
        allowed = {"where", "directed"}
        if relationship.is_list:
            allowed |= {"sort", "limit", "offset"}
        args = field_arguments(selection, context, frozenset(allowed))
        nested, pattern = self._related(relationship, context, args.get("directed"), AuthorizationOperation.READ)

        lines = [f"MATCH {pattern}"]
        lines += self.where_lines(nested, self.filters.create_predicate(args.get("where"), nested))
        inner = self.project(selection.selections, nested)
        lines += inner.lines()

        if relationship.is_list:
            plan = self.sorting.plan(args.get("sort"), nested)
            pagination = self.sorting.pagination(nested.entity, args.get("limit"), args.get("offset"))
            lines += self.sorting.clauses(plan, pagination, context.env)

        result = context.env.variable("var")
        collected = f"collect({inner.render(nested.target)})"
        if not relationship.is_list:
            collected = f"head({collected})"
        lines.append(f"RETURN {collected} AS {result}")
        return call_block(lines, imports=[context.target]), result, inner.shape

    # --- Connections ---

    def _nested_connection(
        self, relationship: Relationship, selection: FieldSelection, context: QueryContext
    ) -> tuple[list[str], str, Optional[Shape]]:
        args = field_arguments(selection, context, frozenset({"where", "sort", "first", "after", "directed"}))
        nested, pattern = self._related(relationship, context, args.get("directed"), AuthorizationOperation.READ)

        lines = [f"MATCH {pattern}"]
        lines += self.where_lines(nested, self._connection_where(args.get("where"), nested, relationship))
        plan = self.sorting.plan(args.get("sort"), nested, node_key="node")
        pagination = self.sorting.connection_window(nested.entity, args.get("first"), args.get("after"))

        prefix = f"{context.entity.name}{upper_first(relationship.name)}"
        tail, expression, shape = self.connection(
            selection, nested, plan, pagination,
            typename=f"{prefix}Connection",
            edge_typename=f"{prefix}Relationship",
        )
        result = context.env.variable("var")
        lines += tail
        lines.append(f"RETURN {expression} AS {result}")
        return call_block(lines, imports=[context.target]), result, shape

    def _connection_where(self, where: Any, context: QueryContext, relationship: Relationship) -> Optional[str]:
        if where is None:
            return None
        if not isinstance(where, dict):
            raise QueryValidationError(
                f"Expected an object to filter '{relationship.name}Connection', got {inspect_value(where)}"
            )
        parts = []
        for key, value in where.items():
            if key == "node":
                parts.append(self.filters.create_predicate(value, context))
            elif key in ("AND", "OR"):
                items = value if isinstance(value, list) else [value]
                nested = [self._connection_where(item, context, relationship) for item in items]
                if key == "AND":
                    parts.append(and_(*nested))
                elif all(nested):
                    parts.append(or_(*nested))
            elif key == "NOT":
                inner = self._connection_where(value, context, relationship)
                parts.append(f"NOT ({inner})" if inner else None)
            else:
                raise QueryValidationError(
                    f"Unknown field '{key}' in filter of '{relationship.name}Connection'"
                )
        return and_(*parts)

    def connection(
        self,
        selection: FieldSelection,
        context: QueryContext,
        plan: SortPlan,
        pagination: Pagination,
        typename: str,
        edge_typename: str,
        score: Optional[str] = None,
    ) -> tuple[list[str], str, ConnectionShape]:
        """
        Compile the part of a connection that follows the MATCH and WHERE.

        Matched rows are collected into edges, counted, then each selected
        edges field unwinds them again to sort, page and project.

        Args:
            selection: The connection field
            context: Context of the matched node
            plan: Sort plan for the edges
            pagination: Page window
            typename: __typename of the connection
            edge_typename: __typename of its edges
            score: Score variable, inside vector searches

        Returns:
            (lines, expression of the connection value, shape)
        """
        env = context.env
        node = context.target
        edge_items = [("node", node)]
        rebind = [f"edge.node AS {node}"]
        if score is not None:
            edge_items.append(("score", score))
            rebind.append(f"edge.score AS {score}")

        lines = [
            f"WITH collect({map_literal(edge_items)}) AS edges",
            "WITH edges, size(edges) AS totalCount",
        ]
        shape = ConnectionShape(typename=typename, offset=pagination.offset, limit=pagination.limit)
        result_items = []

        for sub in visible_selections(selection.selections, context.variables):
            key = sub.response_key
            if sub.name == "edges":
                body, projected, edge_shape = self._edges(sub, context, edge_typename, score)
                edges_var = env.variable("var")
                lines += call_block(
                    ["UNWIND edges AS edge", "WITH " + ", ".join(rebind)]
                    + body
                    + self.sorting.clauses(plan, pagination, env)
                    + [f"RETURN collect({map_literal(projected)}) AS {edges_var}"],
                    imports=["edges"],
                )
                result_items.append((key, edges_var))
                shape.selections.append((key, "edges", edge_shape))
            elif sub.name == "totalCount":
                shape.selections.append((key, "totalCount", None))
            elif sub.name == "pageInfo":
                fields = []
                for info in visible_selections(sub.selections, context.variables):
                    if info.name not in PAGE_INFO_FIELDS:
                        raise QueryValidationError(f"Unknown field '{info.name}' on 'PageInfo'")
                    fields.append((info.response_key, info.name))
                shape.selections.append((key, "pageInfo", fields))
            elif sub.name == "__typename":
                shape.selections.append((key, "__typename", None))
            else:
                raise QueryValidationError(f"Unknown field '{sub.name}' on '{typename}'")

        result_items.append(("totalCount", "totalCount"))
        return lines, map_literal(result_items), shape

    def _edges(
        self, selection: FieldSelection, context: QueryContext, typename: str, score: Optional[str]
    ) -> tuple[list[str], list[tuple[str, str]], EdgeShape]:
        body = []
        projected = []
        shape = EdgeShape(typename=typename)
        for sub in visible_selections(selection.selections, context.variables):
            key = sub.response_key
            if sub.name == "cursor":
                shape.selections.append((key, "cursor"))
            elif sub.name == "node":
                inner = self.project(sub.selections, context)
                body += inner.lines()
                projected.append((key, inner.render(context.target)))
                shape.selections.append((key, "node"))
                shape.node_shape = inner.shape
            elif sub.name == "score" and score is not None:
                projected.append((key, score))
                shape.selections.append((key, "score"))
            elif sub.name == "__typename":
                shape.selections.append((key, "__typename"))
            else:
                raise QueryValidationError(f"Unknown field '{sub.name}' on '{typename}'")
        return body, projected, shape

    # --- Aggregates ---

    def _nested_aggregate(
        self, relationship: Relationship, selection: FieldSelection, context: QueryContext
    ) -> tuple[list[str], str, None]:
        args = field_arguments(selection, context, frozenset({"where", "directed"}))
        nested, pattern = self._related(relationship, context, args.get("directed"), AuthorizationOperation.AGGREGATE)
        match = [f"MATCH {pattern}"]
        match += self.where_lines(nested, self.filters.create_predicate(args.get("where"), nested))
        typename = f"{context.entity.name}{nested.entity.name}{upper_first(relationship.name)}AggregationSelection"
        expression, blocks = self.aggregation(
            selection, nested, match, imports=[context.target], typename=typename, node_wrapper=True
        )
        return [line for block in blocks for line in block], expression, None

    def aggregation(
        self,
        selection: FieldSelection,
        context: QueryContext,
        match: list[str],
        imports: list[str],
        typename: str,
        node_wrapper: bool = False,
    ) -> tuple[str, list[list[str]]]:
        """
        Compile an aggregate selection set.

        Every requested value gets its own CALL block re-running the match,
        so count and per-field aggregations never multiply rows.

        Args:
            selection: The aggregate field
            context: Context of the matched node
            match: MATCH and WHERE lines shared by every block
            imports: Outer variables the blocks read
            typename: __typename of the aggregate selection
            node_wrapper: True for nested aggregates, whose field
                aggregations live under a "node" key

        Returns:
            (map expression of the aggregate value, CALL blocks)
        """
        items = []
        blocks = []
        for sub in visible_selections(selection.selections, context.variables):
            key = sub.response_key
            if sub.name == "count":
                result = context.env.variable("var")
                blocks.append(call_block(match + [f"RETURN count({context.target}) AS {result}"], imports))
                items.append((key, result))
            elif sub.name == "__typename":
                items.append((key, quote(typename)))
            elif node_wrapper and sub.name == "node":
                node_items = []
                for field_selection in visible_selections(sub.selections, context.variables):
                    node_items.append(self._field_aggregation(field_selection, context, match, imports, blocks))
                items.append((sub.response_key, map_literal(node_items)))
            elif not node_wrapper:
                items.append(self._field_aggregation(sub, context, match, imports, blocks))
            else:
                raise QueryValidationError(f"Unknown field '{sub.name}' on '{typename}'")
        return map_literal(items), blocks

    def _field_aggregation(
        self,
        selection: FieldSelection,
        context: QueryContext,
        match: list[str],
        imports: list[str],
        blocks: list[list[str]],
    ) -> tuple[str, str]:
        entity: Entity = context.entity
        if selection.name == "__typename":
            return selection.response_key, quote(f"{entity.name}AggregateSelection")
        attribute = entity.attribute(selection.name)
        if attribute is None or attribute.is_list:
            raise QueryValidationError(f"Cannot aggregate field '{selection.name}' on '{entity.name}'")

        value = prop(context.target, attribute.db_name)
        wanted = visible_selections(selection.selections, context.variables)
        if not wanted:
            raise QueryValidationError(f"Field '{selection.name}' of an aggregate must have a selection of subfields")

        result = context.env.variable("var")
        if attribute.is_numeric:
            parts = []
            for sub in wanted:
                if sub.name == "__typename":
                    parts.append((sub.response_key, quote(f"{attribute.type_name}AggregateSelection")))
                elif sub.name in NUMERIC_AGGREGATIONS:
                    parts.append((sub.response_key, f"{NUMERIC_AGGREGATIONS[sub.name]}({value})"))
                else:
                    raise QueryValidationError(f"Unknown aggregation '{sub.name}' on '{attribute.name}'")
            body = [f"RETURN {map_literal(parts)} AS {result}"]
        elif attribute.is_string:
            values = context.env.variable("var")
            parts = []
            for sub in wanted:
                if sub.name == "__typename":
                    parts.append((sub.response_key, quote("StringAggregateSelection")))
                elif sub.name == "longest":
                    parts.append((sub.response_key, f"head({values})"))
                elif sub.name == "shortest":
                    parts.append((sub.response_key, f"last({values})"))
                else:
                    raise QueryValidationError(f"Unknown aggregation '{sub.name}' on '{attribute.name}'")
            body = [
                f"WITH {context.target}",
                f"ORDER BY size({value}) DESC",
                f"WITH collect({value}) AS {values}",
                f"RETURN {map_literal(parts)} AS {result}",
            ]
        else:
            raise QueryValidationError(f"Cannot aggregate field '{attribute.name}' of type '{attribute.type_name}'")

        blocks.append(call_block(match + body, imports))
        return selection.response_key, result
