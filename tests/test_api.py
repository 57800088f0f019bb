"""
Tests for the cypherql main API.

Statements run against the FakeExecutor from conftest, so these cover the
whole path from request text to response data without a database.
"""

import pytest

from cypherql import CypherQL, CypherQLConfig
from cypherql.exceptions import (
    ConstraintValidationError,
    CypherQLError,
    ForbiddenError,
    IndexesAndConstraintsError,
    QueryParseError,
    QueryValidationError,
)
from cypherql.translator import AccessMode
from cypherql.wrappers import CONSTRAINT_VALIDATION_CODE


class DriverError(Exception):
    """Stand-in for a driver error carrying a status code."""

    def __init__(self, message, code=None):
        super().__init__(message)
        self.message = message
        self.code = code


@pytest.fixture
def make_api(make_executor, type_defs):
    def _make(schema_text=None, config=None, **executor_args):
        executor = make_executor(**executor_args)
        return CypherQL(schema_text or type_defs, executor=executor, config=config or CypherQLConfig()), executor
    return _make


class TestTranslate:
    """Tests for compiling without running."""

    def test_translate(self, make_api):
        api, executor = make_api()

        [statement] = api.translate('{ movies(where: { title: "Heat" }) { title } }')

        assert statement.cypher.startswith("MATCH (this:Movie)")
        assert statement.params == {"param0": "Heat"}
        assert executor.calls == []

    def test_operation_name(self, make_api):
        api, _ = make_api()

        [statement] = api.translate(
            "query Movies { movies { title } } query Actors { actors { name } }", operation_name="Actors"
        )

        assert statement.response_key == "actors"

    def test_ambiguous_operation(self, make_api):
        api, _ = make_api()

        with pytest.raises(QueryValidationError):
            api.translate("query A { movies { title } } query B { actors { name } }")
        with pytest.raises(QueryValidationError):
            api.translate("query A { movies { title } }", operation_name="B")

    def test_parse_error(self, make_api):
        api, _ = make_api()

        with pytest.raises(QueryParseError):
            api.translate("{ movies { title }")

    def test_schema_is_built_once(self, make_api):
        api, _ = make_api()

        assert api.schema.entity("Movie").plural == "movies"
        assert api.compiler.schema is api.schema


class TestExecute:
    """Tests for compiling and running requests."""

    @pytest.mark.asyncio
    async def test_read(self, make_api):
        api, executor = make_api(rows=[[{"this": {"title": "Heat"}}, {"this": {"title": "Ronin"}}]])

        result = await api.execute("{ movies { title } }")

        assert result.data == {"movies": [{"title": "Heat"}, {"title": "Ronin"}]}
        assert result.to_dict() == {"data": result.data}
        [(statement, params, database, access_mode)] = executor.calls
        assert statement == "MATCH (this:Movie)\nRETURN this { .title } AS this"
        assert access_mode == AccessMode.READ
        assert database is None

    @pytest.mark.asyncio
    async def test_root_typename_and_order(self, make_api):
        api, executor = make_api(rows=[
            [{"this": {"name": "Keanu Reeves"}}],
            [{"this": {"count": 2}}],
        ])

        result = await api.execute("{ actors { name } __typename total: moviesAggregate { count } }")

        assert list(result.data) == ["actors", "__typename", "total"]
        assert result.data["__typename"] == "Query"
        assert result.data["total"] == {"count": 2}
        assert len(executor.calls) == 2
        assert len(result.statements) == 2

    @pytest.mark.asyncio
    async def test_mutation(self, make_api):
        api, executor = make_api(
            rows=[[{"this": {"books": [{"isbn": "1"}]}}]],
            config=CypherQLConfig(database="library"),
        )

        result = await api.execute(
            'mutation ($isbn: String!) { __typename createBooks(input: [{ isbn: $isbn }]) { books { isbn } } }',
            variables={"isbn": "1"},
        )

        assert result.data == {"__typename": "Mutation", "createBooks": {"books": [{"isbn": "1"}]}}
        [(_, params, database, access_mode)] = executor.calls
        assert params == {"param0": [{"isbn": "1"}]}
        assert database == "library"
        assert access_mode == AccessMode.WRITE

    @pytest.mark.asyncio
    async def test_nothing_runs_when_a_field_is_invalid(self, make_api):
        api, executor = make_api()

        with pytest.raises(QueryValidationError):
            await api.execute("{ movies { title } films { title } }")
        assert executor.calls == []

    @pytest.mark.asyncio
    async def test_nothing_runs_when_forbidden(self, make_api):
        secret_type_defs = '''
            type Secret @authorization(validate: [{ where: { jwt: { roles_INCLUDES: "admin" } } }]) {
                code: String
            }
        '''
        api, executor = make_api(schema_text=secret_type_defs)

        with pytest.raises(ForbiddenError):
            await api.execute("{ secrets { code } }", claims={"roles": ["reader"]})
        assert executor.calls == []

    @pytest.mark.asyncio
    async def test_without_executor(self, type_defs):
        api = CypherQL(type_defs, config=CypherQLConfig())

        with pytest.raises(CypherQLError) as exc_info:
            await api.execute("{ movies { title } }")
        assert str(exc_info.value) == "No executor configured"


class TestExecutorErrors:
    """Tests for driver errors surfacing as cypherql errors."""

    CREATE_BOOK = 'mutation { createBooks(input: [{ isbn: "1" }]) { books { isbn } } }'

    @pytest.mark.asyncio
    async def test_duplicate_value(self, make_api):
        error = DriverError(
            "Node(0) already exists with label `Book` and property `isbn` = '1'", code=CONSTRAINT_VALIDATION_CODE
        )
        api, _ = make_api(errors=[error])

        with pytest.raises(ConstraintValidationError) as exc_info:
            await api.execute(self.CREATE_BOOK)
        assert exc_info.value.__cause__ is error

    @pytest.mark.asyncio
    async def test_in_statement_forbidden(self, make_api):
        error = DriverError(
            "Failed to invoke function `apoc.util.validatePredicate`: "
            "Caused by: java.lang.RuntimeException: @neo4j/graphql/FORBIDDEN",
            code="Neo.ClientError.Procedure.ProcedureCallFailed",
        )
        api, _ = make_api(errors=[error])

        with pytest.raises(ForbiddenError):
            await api.execute("{ movies { title } }")

    @pytest.mark.asyncio
    async def test_other_errors_propagate(self, make_api):
        error = RuntimeError("connection reset")
        api, _ = make_api(errors=[error])

        with pytest.raises(RuntimeError) as exc_info:
            await api.execute("{ movies { title } }")
        assert exc_info.value is error


class TestReconciliation:
    """Tests for reconciling through the API."""

    @pytest.mark.asyncio
    async def test_uses_configured_database(self, make_api):
        api, executor = make_api(
            schema_text="type Book { isbn: String! @unique }", config=CypherQLConfig(database="library")
        )

        plan = await api.assert_indexes_and_constraints(create=True)

        assert len(plan.creations) == 1
        assert {call[2] for call in executor.calls} == {"library"}

    @pytest.mark.asyncio
    async def test_reports_problems(self, make_api):
        api, _ = make_api(schema_text="type Book { isbn: String! @unique }")

        with pytest.raises(IndexesAndConstraintsError) as exc_info:
            await api.assert_indexes_and_constraints()
        assert [p.message for p in exc_info.value.problems] == ["Missing constraint for Book.isbn"]

    @pytest.mark.asyncio
    async def test_without_executor(self):
        api = CypherQL("type Book { isbn: String! @unique }", config=CypherQLConfig())

        with pytest.raises(CypherQLError):
            await api.assert_indexes_and_constraints()
