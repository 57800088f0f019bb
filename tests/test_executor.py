"""
Tests for cypherql Executors.

The neo4j driver is replaced with mocks; no database is needed.
"""

import pytest
from unittest.mock import AsyncMock, MagicMock, patch

from cypherql.config import Neo4jConfig
from cypherql.exceptions import ConstraintValidationError, ForbiddenError
from cypherql.indexer import CatalogueEntry, CatalogueKind, ConstraintCreation
from cypherql.translator import AccessMode
from cypherql.wrappers import CONSTRAINT_VALIDATION_CODE, Neo4jExecutor, translate_executor_error
from cypherql.wrappers.neo4j_executor import _fetch


@pytest.fixture
def session():
    """Create a mock async session."""
    session = MagicMock()
    session.execute_read = AsyncMock(return_value=[{"this": 1}])
    session.execute_write = AsyncMock(return_value=[])
    return session


@pytest.fixture
def driver(session):
    """Create a mock AsyncDriver whose session() yields the mock session."""
    driver = MagicMock()
    driver.session.return_value.__aenter__.return_value = session
    driver.close = AsyncMock()
    return driver


class TestNeo4jExecutor:
    """Tests for Neo4jExecutor."""

    @pytest.mark.asyncio
    async def test_read(self, driver, session):
        executor = Neo4jExecutor(driver)

        rows = await executor.run("RETURN 1 AS this", {"a": 1})

        assert rows == [{"this": 1}]
        driver.session.assert_called_once_with(database=None)
        session.execute_read.assert_awaited_once_with(_fetch, "RETURN 1 AS this", {"a": 1})
        session.execute_write.assert_not_called()

    @pytest.mark.asyncio
    async def test_write(self, driver, session):
        executor = Neo4jExecutor(driver, database="movies")

        await executor.run("CREATE (n)", access_mode=AccessMode.WRITE)

        driver.session.assert_called_once_with(database="movies")
        session.execute_write.assert_awaited_once_with(_fetch, "CREATE (n)", {})

    @pytest.mark.asyncio
    async def test_database_argument_wins(self, driver):
        executor = Neo4jExecutor(driver, database="movies")

        await executor.run("RETURN 1 AS this", database="archive")

        driver.session.assert_called_once_with(database="archive")

    @pytest.mark.asyncio
    async def test_fetch(self):
        result = MagicMock()
        result.data = AsyncMock(return_value=[{"this": {"title": "Heat"}}])
        tx = MagicMock()
        tx.run = AsyncMock(return_value=result)

        rows = await _fetch(tx, "MATCH (this:Movie) RETURN this", {"param0": 1})

        tx.run.assert_awaited_once_with("MATCH (this:Movie) RETURN this", {"param0": 1})
        assert rows == [{"this": {"title": "Heat"}}]

    @pytest.mark.asyncio
    async def test_close_on_exit(self, driver):
        async with Neo4jExecutor(driver) as executor:
            assert executor.driver is driver

        driver.close.assert_awaited_once()

    def test_from_config(self):
        config = Neo4jConfig(uri="bolt://localhost:7687", user="neo4j", password="secret", database="movies")

        with patch("cypherql.wrappers.neo4j_executor.AsyncGraphDatabase") as graph_database:
            executor = Neo4jExecutor.from_config(config)

        graph_database.driver.assert_called_once_with("bolt://localhost:7687", auth=("neo4j", "secret"))
        assert executor.driver is graph_database.driver.return_value
        assert executor.database == "movies"


class TestCatalogueHelpers:
    """Tests for the catalogue helpers every Executor gets."""

    @pytest.mark.asyncio
    async def test_inspect_catalogue(self, make_executor):
        executor = make_executor(indexes=[{
            "name": "MovieTitle",
            "type": "FULLTEXT",
            "entityType": "NODE",
            "labelsOrTypes": ["Movie"],
            "properties": ["title"],
        }])

        [entry] = await executor.inspect_catalogue(CatalogueKind.INDEX)

        assert entry == CatalogueEntry("MovieTitle", "FULLTEXT", "NODE", ("Movie",), ("title",))
        assert executor.statements == ["SHOW INDEXES YIELD name, type, entityType, labelsOrTypes, properties"]

    @pytest.mark.asyncio
    async def test_inspect_tolerates_null_columns(self, make_executor):
        executor = make_executor(constraints=[{"name": "c", "type": None, "labelsOrTypes": None, "properties": None}])

        [entry] = await executor.inspect_catalogue(CatalogueKind.CONSTRAINT, "movies")

        assert entry == CatalogueEntry("c", "", "NODE", (), ())
        assert executor.calls[0][2] == "movies"

    @pytest.mark.asyncio
    async def test_create_constraint(self, make_executor):
        executor = make_executor()

        await executor.create_constraint(ConstraintCreation("Book_isbn", "Book", "isbn"))

        [(statement, _, _, access_mode)] = executor.calls
        assert statement == "CREATE CONSTRAINT Book_isbn IF NOT EXISTS FOR (n:Book) REQUIRE n.isbn IS UNIQUE"
        assert access_mode == AccessMode.WRITE

    def test_names_are_escaped(self):
        creation = ConstraintCreation("book isbn", "Library Book", "isbn-13")

        assert creation.cypher() == (
            "CREATE CONSTRAINT `book isbn` IF NOT EXISTS FOR (n:`Library Book`) REQUIRE n.`isbn-13` IS UNIQUE"
        )


class TestErrorTranslation:
    """Tests for translate_executor_error."""

    class DriverError(Exception):
        def __init__(self, message, code=None):
            super().__init__(message)
            self.message = message
            self.code = code

    def test_forbidden_marker(self):
        error = self.DriverError("java.lang.RuntimeException: @neo4j/graphql/FORBIDDEN")

        assert isinstance(translate_executor_error(error), ForbiddenError)

    def test_constraint_code(self):
        error = self.DriverError("already exists", code=CONSTRAINT_VALIDATION_CODE)

        assert isinstance(translate_executor_error(error), ConstraintValidationError)

    def test_unrelated_error(self):
        error = ValueError("boom")

        assert translate_executor_error(error) is error
