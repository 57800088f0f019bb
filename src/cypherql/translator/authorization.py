# -*- encoding: utf-8 -*-
"""
cypherql Authorization Injector - Applies @authorization rules to operations.

Each rule has a node part (compiled to Cypher, may read "$jwt.<path>")
and a jwt part (evaluated here against the decoded claims). Filter rules
narrow the rows an operation sees; validate rules abort the request.

Rule evaluation gives one of three outcomes:
    DENY   the caller fails the claims part or is not authenticated
    ALLOW  the caller passes and the rule has no node part
    NODE   the caller passes and the node part decides per row
"""

import logging
import re
from enum import Enum
from typing import Any, Mapping, Optional, Union

from cypherql.exceptions import ForbiddenError, QueryValidationError
from cypherql.schema.model import Attribute, FilterRule, ValidateRule, ValidationTiming
from cypherql.translator.context import QueryContext
from cypherql.translator.cypher import escape, or_
from cypherql.translator.filters import LOGICAL_KEYS, NEGATIONS, FilterBuilder, parse_where_field

logger = logging.getLogger(__name__)

FORBIDDEN_MARKER = "@neo4j/graphql/FORBIDDEN"
JWT_PREFIX = "$jwt."


class RuleOutcome(Enum):
    DENY = "deny"
    ALLOW = "allow"
    NODE = "node"


class AuthorizationFilterBuilder(FilterBuilder):
    """
    FilterBuilder for rule node parts.

    A string value of the form "$jwt.<path>" reads the claim from the
    request-scoped $jwt parameter instead of binding a literal, and the
    comparison is guarded with "$jwt.<path> IS NOT NULL" so a missing
    claim never matches a missing property.
    """

    def bind_value(
        self, attribute: Attribute, operator: str, value: Any, context: QueryContext
    ) -> tuple[str, Optional[str]]:
        if isinstance(value, str) and value.startswith(JWT_PREFIX):
            path = value[len(JWT_PREFIX):].split(".")
            expression = "$jwt" + "".join(f".{escape(p)}" for p in path)
            return expression, f"{expression} IS NOT NULL"
        return super().bind_value(attribute, operator, value, context)


class ClaimsEvaluator:
    """Evaluates the jwt part of a rule against decoded claims."""

    def evaluate(self, where: Mapping[str, Any], claims: Mapping[str, Any]) -> bool:
        """
        Args:
            where: Filter object keyed <claim>_<OPERATOR>
            claims: Decoded JWT payload

        Returns:
            True when every entry holds
        """
        for key, expected in where.items():
            if key in LOGICAL_KEYS:
                if key == "NOT":
                    if self.evaluate(expected, claims):
                        return False
                    continue
                items = expected if isinstance(expected, list) else [expected]
                results = [self.evaluate(item, claims) for item in items]
                if key == "AND" and not all(results):
                    return False
                if key == "OR" and not any(results):
                    return False
                continue

            parsed = parse_where_field(key)
            if not self._compare(parsed.operator or "EQ", claims.get(parsed.field), expected):
                return False
        return True

    def _compare(self, operator: str, actual: Any, expected: Any) -> bool:
        negate = operator in NEGATIONS
        base = NEGATIONS.get(operator, operator)

        if base == "EQ":
            result = actual == expected
        elif base == "IN":
            result = isinstance(expected, list) and actual in expected
        elif base == "INCLUDES":
            result = isinstance(actual, list) and expected in actual
        elif base in ("CONTAINS", "STARTS_WITH", "ENDS_WITH", "MATCHES"):
            if not isinstance(actual, str) or not isinstance(expected, str):
                result = False
            elif base == "CONTAINS":
                result = expected in actual
            elif base == "STARTS_WITH":
                result = actual.startswith(expected)
            elif base == "ENDS_WITH":
                result = actual.endswith(expected)
            else:
                result = re.fullmatch(expected, actual) is not None
        elif base in ("LT", "LTE", "GT", "GTE"):
            result = self._order(base, actual, expected)
        else:
            raise QueryValidationError(f"Operator '{operator}' is not valid in a jwt filter")

        return not result if negate else result

    def _order(self, operator: str, actual: Any, expected: Any) -> bool:
        try:
            if operator == "LT":
                return actual < expected
            if operator == "LTE":
                return actual <= expected
            if operator == "GT":
                return actual > expected
            return actual >= expected
        except TypeError:
            # missing or incomparable claims never satisfy an ordering
            return False


class AuthorizationInjector:
    """
    Produces the authorization predicates for one entity occurrence.

    Filter rules applicable to the context's operation are ORed together:
    a row is visible when any rule admits it. Validate rules are ORed as
    well; when none can pass for the caller the request is rejected with
    ForbiddenError before any Cypher is emitted.
    """

    def __init__(self):
        self.filters = AuthorizationFilterBuilder()
        self.claims = ClaimsEvaluator()

    def outcome(self, rule: Union[FilterRule, ValidateRule], context: QueryContext) -> RuleOutcome:
        if rule.require_authentication and not context.is_authenticated:
            return RuleOutcome.DENY
        if rule.where.jwt and not self.claims.evaluate(rule.where.jwt, context.claims or {}):
            return RuleOutcome.DENY
        if not rule.where.node:
            return RuleOutcome.ALLOW
        return RuleOutcome.NODE

    def filter_predicate(self, context: QueryContext) -> Optional[str]:
        """
        Build the filter-rule predicate for context.entity at context.target.

        Returns:
            None when no rule restricts the caller, "false" when every
            rule denies, otherwise the ORed node predicates
        """
        rules = [r for r in context.entity.authorization.filter if r.applies_to(context.operation)]
        if not rules:
            return None

        outcomes = [(rule, self.outcome(rule, context)) for rule in rules]
        if any(o == RuleOutcome.ALLOW for _, o in outcomes):
            return None

        node_rules = [rule for rule, o in outcomes if o == RuleOutcome.NODE]
        if not node_rules:
            logger.debug("Filter rules on %s deny the caller", context.entity.name)
            return "false"
        return self._node_predicate(node_rules, context)

    def validate_predicate(
        self, context: QueryContext, timing: ValidationTiming, node_available: bool = True
    ) -> Optional[str]:
        """
        Build the validate-rule check for context.entity at context.target.

        Args:
            context: Context of the entity occurrence
            timing: BEFORE or AFTER the write
            node_available: False when no node exists yet (before a create);
                node-dependent rules are then left to create_checks()

        Returns:
            None when nothing needs checking per row, otherwise an
            apoc.util.validatePredicate call

        Raises:
            ForbiddenError: When no applicable rule can pass for the caller
        """
        rules = self._validate_rules(context, timing)
        if not rules:
            return None

        outcomes = [(rule, self.outcome(rule, context)) for rule in rules]
        if any(o == RuleOutcome.ALLOW for _, o in outcomes):
            return None

        node_rules = [rule for rule, o in outcomes if o == RuleOutcome.NODE]
        if not node_rules:
            logger.debug("Validate rules on %s reject the caller", context.entity.name)
            raise ForbiddenError()
        if not node_available:
            return None

        predicate = self._node_predicate(node_rules, context)
        return f'apoc.util.validatePredicate(NOT ({predicate}), "{FORBIDDEN_MARKER}", [0])'

    def create_checks(self, context: QueryContext) -> list[str]:
        """
        Build the validate checks run against newly created nodes.

        BEFORE rules with a node part cannot see a node that does not exist
        yet, so they are checked against the created node too, unless the
        AFTER check covers the same rules.

        Returns:
            apoc.util.validatePredicate calls, BEFORE first
        """
        checks = []
        before = self._validate_rules(context, ValidationTiming.BEFORE)
        if before and before != self._validate_rules(context, ValidationTiming.AFTER):
            checks.append(self.validate_predicate(context, ValidationTiming.BEFORE))
        checks.append(self.validate_predicate(context, ValidationTiming.AFTER))
        return [c for c in checks if c]

    def _validate_rules(self, context: QueryContext, timing: ValidationTiming) -> list[ValidateRule]:
        return [r for r in context.entity.authorization.validate if r.applies_to(context.operation, timing)]

    def _node_predicate(self, rules: list, context: QueryContext) -> str:
        if "jwt" not in context.env.params:
            context.env.bind_reserved("jwt", dict(context.claims or {}))
            context.env.bind_reserved("isAuthenticated", context.is_authenticated)
        predicates = []
        for rule in rules:
            predicate = self.filters.create_predicate(rule.where.node, context)
            # a node part that compiles to nothing admits every row
            predicates.append(predicate or "true")
        return or_(*predicates)
