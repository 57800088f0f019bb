"""
cypherql - GraphQL-style requests compiled to parameterized Cypher

Compiles a directive-annotated schema plus incoming requests into single
parameterized Cypher statements, and reconciles the schema's declared
search indexes and uniqueness constraints with a live Neo4j catalogue.

Components:
- CypherQL: Main interface (translate, execute, assert_indexes_and_constraints)
- cypherql.schema: Metadata Model built from type definitions
- cypherql.translator: Query compiler
- cypherql.indexer: Index and constraint reconciliation
- cypherql.wrappers: Executors (Neo4jExecutor)

Usage:
    from cypherql import CypherQL

    cypherql = CypherQL(type_defs, executor=executor)
    [statement] = cypherql.translate("{ movies { title } }")
    result = await cypherql.execute("{ movies { title } }")
"""

from cypherql.api.cypherql import CypherQL, ExecutionResult
from cypherql.config import CypherQLConfig, Neo4jConfig
from cypherql.exceptions import (
    CypherQLError,
    SchemaParseError,
    QueryParseError,
    SchemaValidationError,
    QueryValidationError,
    SearchConflictError,
    ForbiddenError,
    ConstraintValidationError,
    IndexesAndConstraintsError,
    ReconciliationProblem,
)
from cypherql.schema import Schema, build_schema
from cypherql.translator import CompiledStatement, QueryCompiler

__all__ = [
    # Main API
    "CypherQL",
    "ExecutionResult",
    "CypherQLConfig",
    "Neo4jConfig",
    # Compilation
    "Schema",
    "build_schema",
    "QueryCompiler",
    "CompiledStatement",
    # Errors
    "CypherQLError",
    "SchemaParseError",
    "QueryParseError",
    "SchemaValidationError",
    "QueryValidationError",
    "SearchConflictError",
    "ForbiddenError",
    "ConstraintValidationError",
    "IndexesAndConstraintsError",
    "ReconciliationProblem",
]

__version__ = "0.1.0"
