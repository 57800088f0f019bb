"""
cypherql Sort/Paginate Planner - ORDER BY, SKIP and LIMIT for operations.

Sort input is a list of single- or multi-key objects. Keys are emitted in
the order given and never reordered. A key is one of:
    - an attribute of the entity:           {title: ASC}
    - a singular relationship, nested:      {director: {name: DESC}}
    - the search score, inside searches:    {score: DESC}
    - the node wrapper, inside searches:    {node: {title: ASC}}

Connection cursors are opaque base64 strings of "arrayconnection:<offset>".
"""

import base64
import binascii
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Optional

from cypherql.exceptions import QueryValidationError
from cypherql.schema.model import Entity, Relationship
from cypherql.translator.context import Environment, QueryContext
from cypherql.translator.cypher import call_block, prop
from cypherql.translator.filters import relationship_pattern
from cypherql.translator.scalars import coerce_non_negative_int, inspect_value

CURSOR_PREFIX = "arrayconnection:"


class SortDirection(Enum):
    """Sort direction for ORDER BY."""
    ASC = "ASC"
    DESC = "DESC"


@dataclass(frozen=True)
class SortField:
    """One ORDER BY item."""
    expression: str
    direction: SortDirection

    def render(self) -> str:
        return f"{self.expression} {self.direction.value}"


@dataclass
class SortPlan:
    """
    Ordered sort items plus the subqueries that compute related values.

    Attributes:
        fields: ORDER BY items, in request order
        subqueries: CALL blocks to emit before the ORDER BY
    """
    fields: list[SortField] = field(default_factory=list)
    subqueries: list[list[str]] = field(default_factory=list)

    @property
    def is_empty(self) -> bool:
        return not self.fields


@dataclass(frozen=True)
class Pagination:
    """Validated page window."""
    offset: int = 0
    limit: Optional[int] = None

    @property
    def is_empty(self) -> bool:
        return not self.offset and self.limit is None


def offset_to_cursor(offset: int) -> str:
    """Encode an offset as an opaque connection cursor."""
    return base64.b64encode(f"{CURSOR_PREFIX}{offset}".encode("utf-8")).decode("ascii")


def cursor_to_offset(cursor: Any) -> int:
    """
    Decode a connection cursor.

    Raises:
        QueryValidationError: If the cursor was not produced by offset_to_cursor
    """
    if not isinstance(cursor, str):
        raise QueryValidationError(f"Invalid cursor: {inspect_value(cursor)}")
    try:
        decoded = base64.b64decode(cursor.encode("ascii"), validate=True).decode("utf-8")
    except (binascii.Error, UnicodeError, ValueError):
        raise QueryValidationError(f"Invalid cursor: {inspect_value(cursor)}") from None
    suffix = decoded[len(CURSOR_PREFIX):]
    if not decoded.startswith(CURSOR_PREFIX) or not suffix.isdigit():
        raise QueryValidationError(f"Invalid cursor: {inspect_value(cursor)}")
    return int(suffix)


class SortPlanner:
    """
    Plans ordering and paging for one operation.

    Example:
        plan = planner.plan([{"score": "DESC"}, {"movie": {"title": "ASC"}}],
                            context, score_key="score", node_key="movie")
        lines = planner.clauses(plan, planner.pagination(entity, 10, 0), env)
    """

    def plan(
        self,
        sort: Any,
        context: QueryContext,
        score_key: Optional[str] = None,
        node_key: Optional[str] = None,
    ) -> SortPlan:
        """
        Build a SortPlan.

        Args:
            sort: Sort argument, an object or a list of objects (None for none)
            context: Context of the node being sorted
            score_key: Key that sorts by the search score, inside searches
            node_key: Key wrapping entity sorts, inside searches and connections

        Raises:
            QueryValidationError: On unknown keys or invalid directions
        """
        plan = SortPlan()
        if sort is None:
            return plan
        entries = sort if isinstance(sort, list) else [sort]
        for entry in entries:
            if not isinstance(entry, dict):
                raise QueryValidationError(f"Invalid sort: {inspect_value(entry)}")
            for key, value in entry.items():
                if score_key is not None and key == score_key:
                    if context.score is None:
                        raise QueryValidationError("Sorting by score is only available in search operations")
                    plan.fields.append(SortField(context.score, self._direction(value)))
                elif node_key is not None and key == node_key:
                    if value is not None:
                        if not isinstance(value, dict):
                            raise QueryValidationError(f"Invalid sort for '{key}': {inspect_value(value)}")
                        self._entity_sort(value, context, plan)
                else:
                    self._entity_sort({key: value}, context, plan)
        return plan

    def _direction(self, value: Any) -> SortDirection:
        try:
            return SortDirection(value)
        except ValueError:
            raise QueryValidationError(f"Invalid sort direction {inspect_value(value)}") from None

    def _entity_sort(self, entries: dict, context: QueryContext, plan: SortPlan) -> None:
        entity = context.entity
        for key, value in entries.items():
            attribute = entity.attribute(key)
            if attribute is not None:
                plan.fields.append(SortField(prop(context.target, attribute.db_name), self._direction(value)))
                continue
            relationship = entity.relationship(key)
            if relationship is not None:
                self._related_sort(relationship, value, context, context.target, (), plan)
                continue
            if key == "score":
                raise QueryValidationError("Sorting by score is only available in search operations")
            raise QueryValidationError(f"Unknown sort field '{key}' on '{entity.name}'")

    def _related_sort(
        self,
        relationship: Relationship,
        value: Any,
        context: QueryContext,
        root: str,
        patterns: tuple,
        plan: SortPlan,
    ) -> None:
        if relationship.is_list:
            raise QueryValidationError(f"Cannot sort by list relationship '{relationship.name}'")
        if not isinstance(value, dict):
            raise QueryValidationError(f"Invalid sort for '{relationship.name}': {inspect_value(value)}")

        target = context.schema.entity(relationship.target)
        related = context.env.variable("this")
        patterns = patterns + (relationship_pattern(context.target, relationship, related, target.labels),)
        nested = context.push(target, related)

        for key, item in value.items():
            attribute = target.attribute(key)
            if attribute is not None:
                result = context.env.variable("var")
                plan.subqueries.append(call_block(
                    [
                        f"OPTIONAL MATCH {', '.join(patterns)}",
                        f"RETURN head(collect({prop(related, attribute.db_name)})) AS {result}",
                    ],
                    imports=[root],
                ))
                plan.fields.append(SortField(result, self._direction(item)))
                continue
            inner = target.relationship(key)
            if inner is not None:
                self._related_sort(inner, item, nested, root, patterns, plan)
                continue
            raise QueryValidationError(f"Unknown sort field '{key}' on '{target.name}'")

    # --- Paging ---

    def pagination(self, entity: Optional[Entity], limit: Any = None, offset: Any = None) -> Pagination:
        """
        Validate limit/offset and apply the entity's @limit bounds.

        Raises:
            QueryValidationError: If either value is not a non-negative integer
        """
        limit = coerce_non_negative_int("limit", limit)
        offset = coerce_non_negative_int("offset", offset) or 0
        if entity is not None:
            if limit is None:
                limit = entity.limit_default if entity.limit_default is not None else entity.limit_max
            if limit is not None and entity.limit_max is not None:
                limit = min(limit, entity.limit_max)
        return Pagination(offset=offset, limit=limit)

    def connection_window(self, entity: Optional[Entity], first: Any = None, after: Any = None) -> Pagination:
        """
        Resolve first/after into a page window; after points at the last
        edge already seen, so the window starts right behind it.
        """
        first = coerce_non_negative_int("first", first)
        offset = cursor_to_offset(after) + 1 if after is not None else 0
        return self.pagination(entity, first, offset)

    def clauses(self, plan: SortPlan, pagination: Optional[Pagination], env: Environment) -> list[str]:
        """Render the sort subqueries and the WITH * ORDER BY / SKIP / LIMIT clause."""
        lines = []
        for block in plan.subqueries:
            lines.extend(block)
        pagination = pagination or Pagination()
        if plan.is_empty and pagination.is_empty:
            return lines
        lines.append("WITH *")
        if not plan.is_empty:
            lines.append("ORDER BY " + ", ".join(f.render() for f in plan.fields))
        if pagination.offset:
            lines.append(f"SKIP {env.param(pagination.offset)}")
        if pagination.limit is not None:
            lines.append(f"LIMIT {env.param(pagination.limit)}")
        return lines
