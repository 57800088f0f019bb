# -*- encoding: utf-8 -*-
"""
cypherql Neo4j Executor - Executor over the official async neo4j driver.

Statements run in managed transactions (execute_read / execute_write), so
the driver's own retry policy applies to transient failures. Nothing here
retries on its own.
"""

import logging
from typing import Any, Optional

from neo4j import AsyncDriver, AsyncGraphDatabase, AsyncManagedTransaction
from neo4j.exceptions import ConstraintError

from cypherql.config import Neo4jConfig
from cypherql.exceptions import ConstraintValidationError, ForbiddenError
from cypherql.translator.authorization import FORBIDDEN_MARKER
from cypherql.translator.statement import AccessMode
from cypherql.wrappers.executor import Executor

logger = logging.getLogger(__name__)

CONSTRAINT_VALIDATION_CODE = "Neo.ClientError.Schema.ConstraintValidationFailed"


def translate_executor_error(error: Exception) -> Exception:
    """
    Normalize the driver errors callers are expected to handle.

    Args:
        error: Error raised while running a statement

    Returns:
        ForbiddenError when an authorization check failed inside the
        statement, ConstraintValidationError on a uniqueness violation,
        otherwise the error itself
    """
    message = getattr(error, "message", None) or str(error)
    if FORBIDDEN_MARKER in message:
        logger.debug("Translated executor error to Forbidden: %s", message)
        return ForbiddenError()
    if isinstance(error, ConstraintError) or getattr(error, "code", None) == CONSTRAINT_VALIDATION_CODE:
        logger.debug("Translated executor error to constraint failure: %s", message)
        return ConstraintValidationError()
    return error


async def _fetch(tx: AsyncManagedTransaction, statement: str, params: dict[str, Any]) -> list[dict[str, Any]]:
    result = await tx.run(statement, params)
    return await result.data()


class Neo4jExecutor(Executor):
    """
    Executor backed by a neo4j AsyncDriver.

    Example:
        async with Neo4jExecutor.from_config(Neo4jConfig.from_env()) as executor:
            rows = await executor.run("MATCH (n) RETURN count(n) AS this")
    """

    def __init__(self, driver: AsyncDriver, database: Optional[str] = None):
        self.driver = driver
        self.database = database

    @classmethod
    def from_config(cls, config: Neo4jConfig) -> "Neo4jExecutor":
        driver = AsyncGraphDatabase.driver(config.uri, auth=(config.user, config.password))
        logger.info("Neo4j driver created for %s", config.uri)
        return cls(driver, database=config.database)

    async def run(
        self,
        statement: str,
        params: Optional[dict[str, Any]] = None,
        database: Optional[str] = None,
        access_mode: AccessMode = AccessMode.READ,
    ) -> list[dict[str, Any]]:
        database = database or self.database
        async with self.driver.session(database=database) as session:
            if access_mode == AccessMode.WRITE:
                return await session.execute_write(_fetch, statement, params or {})
            return await session.execute_read(_fetch, statement, params or {})

    async def close(self) -> None:
        await self.driver.close()
        logger.info("Neo4j driver closed")

    async def __aenter__(self) -> "Neo4jExecutor":
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.close()
