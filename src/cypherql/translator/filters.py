# -*- encoding: utf-8 -*-
"""
cypherql Filter Builder - Compiles where objects into Cypher predicates.

Keys follow the <field>_<OPERATOR> convention:
    title: "Matrix"                 -> this.title = $param0
    released_GTE: 1999              -> this.released >= $param0
    title_NOT_IN: ["A", "B"]        -> NOT (this.title IN $param0)
    actors_SOME: {name: "Keanu"}    -> EXISTS { MATCH ... WHERE ... }
    actorsAggregate: {count_GT: 2}  -> size([pattern | 1]) > $param0
    actorsAggregate: {node: {name_SHORTEST_LT: 3}}
                                    -> apoc.coll.min([pattern | size(this0.name)]) < $param0
    AND / OR: [...], NOT: {...}

Every value is coerced against the field's scalar type and bound as a
parameter through the request Environment.
"""

import re
from dataclasses import dataclass
from typing import Any, Optional

from cypherql.exceptions import QueryValidationError
from cypherql.schema.model import Attribute, Relationship
from cypherql.translator.context import QueryContext
from cypherql.translator.cypher import and_, escape, labels_expr, not_, or_, prop
from cypherql.translator.scalars import coerce_list, coerce_scalar, inspect_value

WHERE_FIELD = re.compile(
    r"^(?P<field>[_A-Za-z][_0-9A-Za-z]*?)"
    r"(?:_(?P<operator>NOT|NOT_IN|IN|NOT_INCLUDES|INCLUDES|MATCHES|NOT_CONTAINS|CONTAINS"
    r"|NOT_STARTS_WITH|STARTS_WITH|NOT_ENDS_WITH|ENDS_WITH|LT|LTE|GT|GTE|ALL|NONE|SINGLE|SOME|EQ))?$"
)

COMPARISONS = {
    "EQ": "=",
    "LT": "<",
    "LTE": "<=",
    "GT": ">",
    "GTE": ">=",
    "IN": "IN",
    "CONTAINS": "CONTAINS",
    "STARTS_WITH": "STARTS WITH",
    "ENDS_WITH": "ENDS WITH",
    "MATCHES": "=~",
}

NEGATIONS = {
    "NOT": "EQ",
    "NOT_IN": "IN",
    "NOT_INCLUDES": "INCLUDES",
    "NOT_CONTAINS": "CONTAINS",
    "NOT_STARTS_WITH": "STARTS_WITH",
    "NOT_ENDS_WITH": "ENDS_WITH",
}

STRING_OPERATORS = frozenset({"CONTAINS", "STARTS_WITH", "ENDS_WITH", "MATCHES"})
ORDER_OPERATORS = frozenset({"LT", "LTE", "GT", "GTE"})

QUANTIFIERS = {
    None: "SOME",
    "SOME": "SOME",
    "NOT": "NONE",
    "NONE": "NONE",
    "ALL": "ALL",
    "SINGLE": "SINGLE",
}

LOGICAL_KEYS = frozenset({"AND", "OR", "NOT"})

# --- Aggregation filters ---

AGGREGATION_FIELD = re.compile(
    r"^(?P<field>[_A-Za-z][_0-9A-Za-z]*?)"
    r"(?:_(?P<function>AVERAGE|MIN|MAX|SUM|SHORTEST|LONGEST))?"
    r"(?:_LENGTH)?"
    r"(?:_(?P<operator>EQUAL|LT|LTE|GT|GTE))?$"
)

NUMERIC_AGGREGATIONS = {
    "AVERAGE": "apoc.coll.avg",
    "MIN": "apoc.coll.min",
    "MAX": "apoc.coll.max",
    "SUM": "apoc.coll.sum",
}

# string aggregations work on value lengths
STRING_AGGREGATIONS = {
    "AVERAGE": "apoc.coll.avg",
    "SHORTEST": "apoc.coll.min",
    "LONGEST": "apoc.coll.max",
}


@dataclass(frozen=True)
class WhereField:
    """A parsed where key: field name plus optional operator suffix."""
    field: str
    operator: Optional[str] = None


def parse_where_field(key: str) -> WhereField:
    """
    Split a where key into field name and operator.

    Raises:
        QueryValidationError: If the key is not a valid field name
    """
    match = WHERE_FIELD.match(key)
    if match is None:
        raise QueryValidationError(f"Invalid filter key '{key}'")
    return WhereField(field=match.group("field"), operator=match.group("operator"))


def relationship_pattern(
    source: str,
    relationship: Relationship,
    target: str,
    labels: tuple,
    directed: Optional[bool] = None,
    variable: str = "",
) -> str:
    """Render '(this)<-[:ACTED_IN]-(this0:Actor)' for a relationship."""
    left, right = relationship.arrows(directed)
    return f"({source}){left}[{variable}:{escape(relationship.type)}]{right}({target}{labels_expr(labels)})"


class FilterBuilder:
    """
    Compiles where objects for the entity of a QueryContext.

    Stateless: everything request-specific lives in the context and its
    Environment, so one builder serves every request.
    """

    def create_predicate(self, where: Any, context: QueryContext) -> Optional[str]:
        """
        Compile a where object.

        Args:
            where: The where object (None means no filter)
            context: Context whose entity and target the filter applies to

        Returns:
            A predicate string, or None when nothing needs filtering

        Raises:
            QueryValidationError: On unknown fields, invalid operators or values
        """
        if where is None:
            return None
        if not isinstance(where, dict):
            raise QueryValidationError(
                f"Expected an object to filter '{context.entity.name}', got {inspect_value(where)}"
            )
        return and_(*(self._entry(key, value, context) for key, value in where.items()))

    def create_score_predicate(self, where: Any, context: QueryContext) -> Optional[str]:
        """
        Compile a score filter ({min, max}, both inclusive).

        Raises:
            QueryValidationError: Outside a search operation or on bad bounds
        """
        if where is None:
            return None
        if context.score is None:
            raise QueryValidationError("Score filters are only available in search operations")
        if not isinstance(where, dict):
            raise QueryValidationError(f"Expected an object for score filter, got {inspect_value(where)}")
        unknown = set(where) - {"min", "max"}
        if unknown:
            raise QueryValidationError(f"Unknown score filter '{sorted(unknown)[0]}'")
        parts = []
        if where.get("min") is not None:
            parts.append(f"{context.score} >= {context.env.param(coerce_scalar('Float', where['min']))}")
        if where.get("max") is not None:
            parts.append(f"{context.score} <= {context.env.param(coerce_scalar('Float', where['max']))}")
        return and_(*parts)

    # --- Entries ---

    def _entry(self, key: str, value: Any, context: QueryContext) -> Optional[str]:
        if key in LOGICAL_KEYS:
            return self._logical(key, value, context)

        entity = context.entity
        parsed = parse_where_field(key)

        attribute = entity.attribute(parsed.field)
        if attribute is not None:
            return self._attribute_predicate(attribute, parsed.operator, value, context)

        relationship = entity.relationship(parsed.field)
        if relationship is not None:
            return self._relationship_predicate(relationship, parsed.operator, value, context)

        if parsed.operator is None and key.endswith("Aggregate"):
            relationship = entity.relationship(key[:-len("Aggregate")])
            if relationship is not None:
                return self._aggregate_predicate(relationship, value, context)

        if key == "score":
            raise QueryValidationError("Score filters are only available in search operations")
        raise QueryValidationError(f"Unknown field '{parsed.field}' on '{entity.name}'")

    def _logical(self, key: str, value: Any, context: QueryContext) -> Optional[str]:
        if value is None:
            return None
        if key == "NOT":
            inner = self.create_predicate(value, context)
            return not_(inner) if inner else None

        items = value if isinstance(value, list) else [value]
        predicates = [self.create_predicate(item, context) for item in items]
        if key == "AND":
            return and_(*predicates)
        # an empty object inside OR admits every row
        if any(p is None for p in predicates):
            return None
        return or_(*predicates)

    # --- Attributes ---

    def _attribute_predicate(
        self, attribute: Attribute, operator: Optional[str], value: Any, context: QueryContext
    ) -> Optional[str]:
        operator = operator or "EQ"
        negate = operator in NEGATIONS
        base = NEGATIONS.get(operator, operator)

        if base not in COMPARISONS and base != "INCLUDES":
            raise QueryValidationError(f"Operator '{operator}' is not valid on field '{attribute.name}'")
        if base in STRING_OPERATORS and (not attribute.is_string or attribute.is_list):
            raise QueryValidationError(f"Operator '{operator}' requires a string field, '{attribute.name}' is not")
        if base == "INCLUDES" and not attribute.is_list:
            raise QueryValidationError(f"Operator '{operator}' requires a list field, '{attribute.name}' is not")
        if base == "IN" and attribute.is_list:
            raise QueryValidationError(f"Operator '{operator}' is not valid on list field '{attribute.name}'")
        if base in ORDER_OPERATORS and attribute.type_name == "Boolean":
            raise QueryValidationError(f"Operator '{operator}' is not valid on Boolean field '{attribute.name}'")

        target = prop(context.target, attribute.db_name)
        if value is None:
            if base != "EQ":
                raise QueryValidationError(f"Operator '{operator}' on '{attribute.name}' does not accept null")
            return f"{target} IS NOT NULL" if negate else f"{target} IS NULL"

        expression, guard = self.bind_value(attribute, base, value, context)
        if base == "INCLUDES":
            predicate = f"{expression} IN {target}"
        else:
            predicate = f"{target} {COMPARISONS[base]} {expression}"
        if negate:
            predicate = not_(predicate)
        return and_(guard, predicate)

    def bind_value(
        self, attribute: Attribute, operator: str, value: Any, context: QueryContext
    ) -> tuple[str, Optional[str]]:
        """
        Coerce a value and bind it as a parameter.

        Returns:
            (expression, guard) where guard is an extra predicate the
            comparison needs, or None
        """
        return context.env.param(self.coerce(attribute, operator, value, context)), None

    def coerce(self, attribute: Attribute, operator: str, value: Any, context: QueryContext) -> Any:
        enum_values = context.schema.enums.get(attribute.type_name) if attribute.is_enum else None
        if operator == "IN":
            if not isinstance(value, list):
                raise QueryValidationError(
                    f"Operator 'IN' on '{attribute.name}' expects a list, got {inspect_value(value)}"
                )
            return coerce_list(attribute.type_name, value, enum_values)
        if operator == "MATCHES":
            return coerce_scalar("String", value)
        if attribute.is_list and operator == "EQ":
            return coerce_list(attribute.type_name, value, enum_values)
        return coerce_scalar(attribute.type_name, value, enum_values)

    # --- Relationships ---

    def _relationship_predicate(
        self, relationship: Relationship, operator: Optional[str], value: Any, context: QueryContext
    ) -> Optional[str]:
        if operator not in QUANTIFIERS:
            raise QueryValidationError(
                f"Operator '{operator}' is not valid on relationship '{relationship.name}'"
            )
        quantifier = QUANTIFIERS[operator]
        target_entity = context.schema.entity(relationship.target)
        related = context.env.variable("this")
        pattern = relationship_pattern(context.target, relationship, related, target_entity.labels)

        if value is None:
            exists = f"EXISTS {{ MATCH {pattern} }}"
            if quantifier == "SOME":
                return not_(exists)
            if quantifier == "NONE":
                return exists
            raise QueryValidationError(f"Operator '{operator}' on '{relationship.name}' does not accept null")

        inner = self.create_predicate(value, context.push(target_entity, related))
        if inner is None:
            return None

        exists = f"EXISTS {{ MATCH {pattern} WHERE {inner} }}"
        if quantifier == "SOME":
            return exists
        if quantifier == "NONE":
            return not_(exists)
        if quantifier == "ALL":
            return and_(exists, not_(f"EXISTS {{ MATCH {pattern} WHERE {not_(inner)} }}"))
        counter = context.env.variable("var")
        return f"single({counter} IN [{pattern} WHERE {inner} | 1] WHERE true)"

    def _aggregate_predicate(
        self, relationship: Relationship, value: Any, context: QueryContext
    ) -> Optional[str]:
        if value is None:
            return None
        target_entity = context.schema.entity(relationship.target)
        related = context.env.variable("this")
        pattern = relationship_pattern(context.target, relationship, related, target_entity.labels)
        return self._aggregation_where(relationship, pattern, related, value, context)

    def _aggregation_where(
        self, relationship: Relationship, pattern: str, related: str, value: Any, context: QueryContext
    ) -> Optional[str]:
        if not isinstance(value, dict):
            raise QueryValidationError(
                f"Expected an object to filter '{relationship.name}Aggregate', got {inspect_value(value)}"
            )
        parts = []
        for key, item in value.items():
            if key in ("AND", "OR"):
                items = item if isinstance(item, list) else [item]
                nested = [self._aggregation_where(relationship, pattern, related, i, context) for i in items]
                parts.append(and_(*nested) if key == "AND" else or_(*nested))
                continue
            if key == "NOT":
                inner = self._aggregation_where(relationship, pattern, related, item, context)
                parts.append(not_(inner) if inner else None)
                continue
            if key == "node":
                parts.append(self._node_aggregation_where(relationship, pattern, related, item, context))
                continue
            parsed = parse_where_field(key)
            operator = parsed.operator or "EQ"
            if parsed.field != "count" or operator not in ("EQ", "LT", "LTE", "GT", "GTE"):
                raise QueryValidationError(f"Unknown aggregation filter '{key}' on '{relationship.name}'")
            if item is None:
                continue
            count = f"size([{pattern} | 1])"
            parts.append(f"{count} {COMPARISONS[operator]} {context.env.param(coerce_scalar('Int', item))}")
        return and_(*parts)

    def _node_aggregation_where(
        self, relationship: Relationship, pattern: str, related: str, value: Any, context: QueryContext
    ) -> Optional[str]:
        if value is None:
            return None
        if not isinstance(value, dict):
            raise QueryValidationError(
                f"Expected an object to filter '{relationship.name}Aggregate.node', got {inspect_value(value)}"
            )
        target_entity = context.schema.entity(relationship.target)
        parts = []
        for key, item in value.items():
            if key in ("AND", "OR"):
                items = item if isinstance(item, list) else [item]
                nested = [self._node_aggregation_where(relationship, pattern, related, i, context) for i in items]
                parts.append(and_(*nested) if key == "AND" else or_(*nested))
                continue
            if key == "NOT":
                inner = self._node_aggregation_where(relationship, pattern, related, item, context)
                parts.append(not_(inner) if inner else None)
                continue

            match = AGGREGATION_FIELD.match(key)
            attribute = target_entity.attribute(match.group("field")) if match else None
            if attribute is None:
                raise QueryValidationError(f"Unknown aggregation filter '{key}' on '{relationship.name}'")
            if item is None:
                continue
            parts.append(self._node_aggregation_predicate(
                attribute, match.group("function"), match.group("operator") or "EQUAL", item,
                pattern, related, context,
            ))
        return and_(*parts)

    def _node_aggregation_predicate(
        self,
        attribute: Attribute,
        function: Optional[str],
        operator: str,
        value: Any,
        pattern: str,
        related: str,
        context: QueryContext,
    ) -> str:
        if attribute.is_list or not (attribute.is_string or attribute.is_numeric):
            raise QueryValidationError(f"Field '{attribute.name}' cannot be used in an aggregation filter")
        comparison = COMPARISONS["EQ" if operator == "EQUAL" else operator]
        stored = prop(related, attribute.db_name)

        if function is not None:
            allowed = STRING_AGGREGATIONS if attribute.is_string else NUMERIC_AGGREGATIONS
            if function not in allowed:
                raise QueryValidationError(f"Aggregation '{function}' is not valid on field '{attribute.name}'")
            if attribute.is_string:
                stored = f"size({stored})"
                type_name = "Float" if function == "AVERAGE" else "Int"
            else:
                type_name = "Float" if function == "AVERAGE" else attribute.type_name
            param = context.env.param(coerce_scalar(type_name, value))
            return f"{allowed[function]}([{pattern} | {stored}]) {comparison} {param}"

        # without an aggregation the filter holds when any related value matches
        if attribute.is_string and operator != "EQUAL":
            stored = f"size({stored})"
            type_name = "Int"
        elif attribute.is_string:
            type_name = "String"
        else:
            type_name = attribute.type_name
        element = context.env.variable("var")
        param = context.env.param(coerce_scalar(type_name, value))
        return f"any({element} IN [{pattern} | {stored}] WHERE {element} {comparison} {param})"
