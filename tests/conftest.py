"""
Shared fixtures for cypherql tests.

The movie schema covers aliases, relationships in both directions, two
full-text indexes, a vector index and identity/uniqueness constraints.
"""

from typing import Any, Optional

import pytest

from cypherql.config import CypherQLConfig
from cypherql.parser import GraphQLParser
from cypherql.schema import build_schema
from cypherql.translator import AccessMode, QueryCompiler
from cypherql.wrappers import Executor

MOVIE_TYPE_DEFS = '''
type Movie
    @fulltext(indexes: [
        { indexName: "MovieTitle", fields: ["title"] }
        { indexName: "MovieDescription", fields: ["description"] }
    ])
    @vector(indexes: [
        { indexName: "movie_embeddings", embeddingProperty: "embedding", dimensions: 3,
          provider: "OpenAI", queryName: "similarMovies" }
    ]) {
    id: ID! @id
    title: String!
    description: String @alias(property: "plot")
    released: Int
    rating: Float
    genres: [String!]
    actors: [Actor!]! @relationship(type: "ACTED_IN", direction: IN)
    director: Person @relationship(type: "DIRECTED", direction: IN)
}

type Actor {
    name: String!
    born: Int
    movies: [Movie!]! @relationship(type: "ACTED_IN", direction: OUT)
}

type Person {
    name: String!
}

type Book {
    isbn: String! @unique
    title: String
}
'''


class FakeExecutor(Executor):
    """
    In-memory Executor recording every statement.

    Attributes:
        rows: Rows returned per statement, consumed in order
        indexes: Rows returned for SHOW INDEXES
        constraints: Rows returned for SHOW CONSTRAINTS
        errors: Errors raised per statement, consumed in order (None for no error)
        calls: (statement, params, database, access_mode) per run()
    """

    def __init__(
        self,
        rows: Optional[list[list[dict]]] = None,
        indexes: Optional[list[dict]] = None,
        constraints: Optional[list[dict]] = None,
        errors: Optional[list[Optional[Exception]]] = None,
    ):
        self.rows = list(rows or [])
        self.indexes = list(indexes or [])
        self.constraints = list(constraints or [])
        self.errors = list(errors or [])
        self.calls: list[tuple[str, dict, Optional[str], AccessMode]] = []

    async def run(
        self,
        statement: str,
        params: Optional[dict[str, Any]] = None,
        database: Optional[str] = None,
        access_mode: AccessMode = AccessMode.READ,
    ) -> list[dict[str, Any]]:
        self.calls.append((statement, params or {}, database, access_mode))
        if statement.startswith("SHOW INDEXES"):
            return self.indexes
        if statement.startswith("SHOW CONSTRAINTS"):
            return self.constraints
        if self.errors:
            error = self.errors.pop(0)
            if error is not None:
                raise error
        if statement.startswith("CREATE"):
            return []
        return self.rows.pop(0) if self.rows else []

    @property
    def statements(self) -> list[str]:
        return [call[0] for call in self.calls]

    def created(self) -> list[str]:
        return [s for s in self.statements if s.startswith("CREATE")]


@pytest.fixture
def parser():
    return GraphQLParser()


@pytest.fixture
def type_defs():
    return MOVIE_TYPE_DEFS


@pytest.fixture
def schema(type_defs):
    return build_schema(type_defs)


@pytest.fixture
def compiler(schema):
    return QueryCompiler(schema, CypherQLConfig())


@pytest.fixture
def compile_one(compiler, parser):
    """Compile a single-root-field request and return its statement."""
    def _compile(source: str, variables: Optional[dict] = None, claims: Optional[dict] = None):
        operation = parser.parse_document(source).operation()
        statements = compiler.compile(operation, variables, claims)
        assert len(statements) == 1
        return statements[0]
    return _compile


@pytest.fixture
def make_executor():
    return FakeExecutor
