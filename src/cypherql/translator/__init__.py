"""
cypherql Translator - Compiles operations into parameterized Cypher.

Components:
    QueryCompiler - Root fields to CompiledStatements
    FilterBuilder - where objects to predicates
    AuthorizationInjector - @authorization rules to predicates and checks
    SortPlanner - sort, limit/offset and cursor windows
    ProjectionBuilder - selection sets to map projections and subqueries
"""

from cypherql.translator.authorization import AuthorizationInjector, ClaimsEvaluator, RuleOutcome
from cypherql.translator.compiler import QueryCompiler
from cypherql.translator.context import Environment, QueryContext
from cypherql.translator.filters import FilterBuilder
from cypherql.translator.projection import ProjectionBuilder
from cypherql.translator.shaping import ConnectionShape, EdgeShape, MapShape, shape_value
from cypherql.translator.sorting import Pagination, SortPlan, SortPlanner, cursor_to_offset, offset_to_cursor
from cypherql.translator.statement import AccessMode, CompiledStatement

__all__ = [
    "QueryCompiler",
    "CompiledStatement",
    "AccessMode",
    "Environment",
    "QueryContext",
    "FilterBuilder",
    "AuthorizationInjector",
    "ClaimsEvaluator",
    "RuleOutcome",
    "SortPlanner",
    "SortPlan",
    "Pagination",
    "offset_to_cursor",
    "cursor_to_offset",
    "ProjectionBuilder",
    "MapShape",
    "EdgeShape",
    "ConnectionShape",
    "shape_value",
]
