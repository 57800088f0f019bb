"""cypherql API module - High-level interface for compiling and executing requests."""

from cypherql.api.cypherql import CypherQL, ExecutionResult

__all__ = [
    "CypherQL",
    "ExecutionResult",
]
