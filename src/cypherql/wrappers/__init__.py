"""
cypherql Wrappers - Executors between the compiler and the database.

    Executor - Abstract interface: run statements, inspect the catalogue,
               create indexes and constraints
    Neo4jExecutor - Executor over the official async neo4j driver
    translate_executor_error - Maps driver errors to cypherql errors
"""

from cypherql.wrappers.executor import Executor
from cypherql.wrappers.neo4j_executor import (
    CONSTRAINT_VALIDATION_CODE,
    Neo4jExecutor,
    translate_executor_error,
)

__all__ = [
    "Executor",
    "Neo4jExecutor",
    "translate_executor_error",
    "CONSTRAINT_VALIDATION_CODE",
]
