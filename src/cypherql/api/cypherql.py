"""
cypherql main API.

Ties the pieces together: type definitions are parsed once into the
Metadata Model, requests are compiled into one Cypher statement per root
field, and an Executor runs them.

Usage:
    from cypherql import CypherQL
    from cypherql.wrappers import Neo4jExecutor

    executor = Neo4jExecutor.from_config(Neo4jConfig.from_env())
    cypherql = CypherQL(type_defs, executor=executor)

    # Compile only
    [statement] = cypherql.translate("{ movies { title } }")
    print(statement.cypher, statement.params)

    # Compile and run
    result = await cypherql.execute(
        "query ($t: String) { movies(where: { title: $t }) { title } }",
        variables={"t": "The Matrix"},
        claims={"sub": "user-1", "roles": ["admin"]},
    )
    print(result.data["movies"])

    # Make sure the indexes and constraints the schema declares exist
    await cypherql.assert_indexes_and_constraints(create=True)
"""

import logging
from dataclasses import dataclass, field
from typing import Any, Mapping, Optional

from cypherql.config import CypherQLConfig
from cypherql.exceptions import CypherQLError, QueryValidationError
from cypherql.indexer import ReconciliationPlan, assert_indexes_and_constraints
from cypherql.parser import Document, GraphQLParser, OperationDefinition
from cypherql.schema import Schema, SchemaBuilder
from cypherql.translator import CompiledStatement, QueryCompiler
from cypherql.translator.projection import visible_selections
from cypherql.wrappers import Executor, translate_executor_error

logger = logging.getLogger(__name__)

ROOT_TYPENAMES = {"query": "Query", "mutation": "Mutation"}


@dataclass
class ExecutionResult:
    """
    Result of executing one operation.

    Attributes:
        data: Response keyed by root field response keys, in selection order
        statements: The statements that produced it
    """
    data: dict[str, Any] = field(default_factory=dict)
    statements: list[CompiledStatement] = field(default_factory=list)

    def to_dict(self) -> dict:
        """Convert to dictionary representation."""
        return {"data": self.data}


class CypherQL:
    """
    Compiles and executes requests against one schema.

    The schema is built once in the constructor and never changes, so a
    single instance can serve concurrent requests.

    Usage:
        cypherql = CypherQL('''
            type Movie @fulltext(indexes: [{ indexName: "MovieTitle", fields: ["title"] }]) {
                title: String! @unique
            }
        ''', executor=executor)
    """

    def __init__(
        self,
        type_defs: str,
        executor: Optional[Executor] = None,
        config: Optional[CypherQLConfig] = None,
    ):
        """
        Initialize CypherQL.

        Args:
            type_defs: Type definitions text
            executor: Executor used by execute() and reconciliation
            config: Settings, read from the environment when omitted

        Raises:
            SchemaParseError: If the type definitions do not parse
            SchemaValidationError: If directives are used incorrectly
        """
        self.config = config or CypherQLConfig.from_env()
        self.executor = executor
        self._parser = GraphQLParser()
        self._schema = SchemaBuilder().build(self._parser.parse_schema(type_defs))
        self._compiler = QueryCompiler(self._schema, self.config)

    @property
    def schema(self) -> Schema:
        return self._schema

    @property
    def compiler(self) -> QueryCompiler:
        return self._compiler

    def parse(self, source: str) -> Document:
        """Parse an operation document without compiling it."""
        return self._parser.parse_document(source)

    def _operation(self, source: str, operation_name: Optional[str]) -> OperationDefinition:
        document = self.parse(source)
        try:
            return document.operation(operation_name)
        except (KeyError, ValueError) as e:
            raise QueryValidationError(str(e.args[0])) from e

    def translate(
        self,
        source: str,
        variables: Optional[Mapping[str, Any]] = None,
        claims: Optional[Mapping[str, Any]] = None,
        operation_name: Optional[str] = None,
    ) -> list[CompiledStatement]:
        """
        Compile a request without running it.

        Args:
            source: Operation document
            variables: Request variables
            claims: Decoded JWT claims, None for unauthenticated callers
            operation_name: Operation to compile when the document has several

        Returns:
            One CompiledStatement per root field

        Raises:
            QueryParseError: If the document does not parse
            QueryValidationError: If the request is invalid
            ForbiddenError: If authorization rejects the caller outright
        """
        operation = self._operation(source, operation_name)
        return self._compiler.compile(operation, variables, claims)

    async def execute(
        self,
        source: str,
        variables: Optional[Mapping[str, Any]] = None,
        claims: Optional[Mapping[str, Any]] = None,
        operation_name: Optional[str] = None,
    ) -> ExecutionResult:
        """
        Compile a request and run its statements.

        Every root field is compiled before the first statement runs, so an
        invalid or forbidden request never reaches the database.

        Raises:
            CypherQLError: On parse, validation or authorization failures
            ForbiddenError: When an in-statement authorization check fails
            ConstraintValidationError: When a write breaks a uniqueness constraint
        """
        if self.executor is None:
            raise CypherQLError("No executor configured")

        operation = self._operation(source, operation_name)
        effective = self._compiler.variables(operation, variables or {})
        planned = []
        for selection in visible_selections(operation.selections, effective):
            if selection.name == "__typename":
                planned.append((selection.response_key, None))
            else:
                statement = self._compiler.compile_field(operation.operation, selection, effective, claims)
                planned.append((selection.response_key, statement))

        result = ExecutionResult()
        for key, statement in planned:
            if statement is None:
                result.data[key] = ROOT_TYPENAMES[operation.operation]
                continue
            rows = await self._run(statement)
            result.data[key] = statement.shape_rows(rows)
            result.statements.append(statement)
        return result

    async def _run(self, statement: CompiledStatement) -> list[dict]:
        try:
            return await self.executor.run(
                statement.cypher,
                statement.params,
                database=self.config.database,
                access_mode=statement.access_mode,
            )
        except Exception as e:
            translated = translate_executor_error(e)
            if translated is not e:
                raise translated from e
            raise

    async def assert_indexes_and_constraints(
        self, create: bool = False, database: Optional[str] = None
    ) -> ReconciliationPlan:
        """
        Check the live indexes and constraints against the schema.

        Args:
            create: Create missing objects instead of reporting them
            database: Target database, defaults to the configured one

        Raises:
            IndexesAndConstraintsError: When any declared object is unresolved
        """
        if self.executor is None:
            raise CypherQLError("No executor configured")
        return await assert_indexes_and_constraints(
            self._schema, self.executor, database=database or self.config.database, create=create
        )
