# -*- encoding: utf-8 -*-
"""
cypherql Exceptions.

Custom exceptions for schema building, query compilation, authorization
and index/constraint reconciliation.
"""

from dataclasses import dataclass
from typing import Optional


class CypherQLError(Exception):
    """Base exception for all cypherql errors."""
    pass


class SchemaParseError(CypherQLError):
    """Raised when type definitions cannot be parsed."""
    pass


class QueryParseError(CypherQLError):
    """Raised when a query document cannot be parsed."""
    pass


class SchemaValidationError(CypherQLError):
    """Raised when type definitions use directives incorrectly."""
    pass


class QueryValidationError(CypherQLError):
    """Raised when a request is rejected before any Cypher is emitted."""
    pass


class SearchConflictError(QueryValidationError):
    """Raised when a single operation asks for more than one search."""

    def __init__(self, message: str = "Can only call one search at any given time"):
        super().__init__(message)


class ForbiddenError(CypherQLError):
    """Raised when an authorization validate rule rejects the request."""

    def __init__(self, message: str = "Forbidden"):
        super().__init__(message)


class ConstraintValidationError(CypherQLError):
    """Raised when a write violates a uniqueness constraint."""

    def __init__(self, message: str = "Constraint validation failed"):
        super().__init__(message)


@dataclass
class ReconciliationProblem:
    """
    A single mismatch between a declared spec and the live catalogue.

    Attributes:
        entity: Name of the entity that declares the spec
        name: Index or constraint name the problem is about
        kind: "fulltext", "vector" or "constraint"
        message: Human readable description, reported verbatim
    """
    entity: str
    name: str
    kind: str
    message: str

    def to_dict(self) -> dict:
        """Convert to dictionary representation."""
        return {
            "entity": self.entity,
            "name": self.name,
            "kind": self.kind,
            "message": self.message,
        }


class IndexesAndConstraintsError(CypherQLError):
    """
    Raised when declared indexes and constraints do not match the database.

    Every problem found during one reconciliation is collected before this
    is raised, so a single run reports all of them.

    Attributes:
        problems: List of ReconciliationProblem, in discovery order

    Usage:
        try:
            await cypherql.assert_indexes_and_constraints()
        except IndexesAndConstraintsError as e:
            for problem in e.problems:
                print(problem.message)
    """

    def __init__(self, problems: list[ReconciliationProblem], message: Optional[str] = None):
        """
        Initialize an IndexesAndConstraintsError.

        Args:
            problems: The collected problems
            message: Optional summary, defaults to the joined problem messages
        """
        self.problems = list(problems)
        if message is None:
            message = "\n".join(p.message for p in self.problems)
        super().__init__(message)

    def to_dict(self) -> dict:
        """Convert exception to dictionary representation."""
        return {
            "error": "IndexesAndConstraintsError",
            "message": str(self),
            "problems": [p.to_dict() for p in self.problems],
        }
