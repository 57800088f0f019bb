# -*- encoding: utf-8 -*-
"""
cypherql Executor - Abstract interface to the database driver.

The compiler never talks to the database. Everything that does goes
through an Executor: running compiled statements, reading the live
catalogue and creating missing indexes and constraints.
"""

import logging
from abc import ABC, abstractmethod
from typing import Any, Optional

from cypherql.indexer.catalogue import (
    CATALOGUE_QUERIES,
    CatalogueEntry,
    CatalogueKind,
    ConstraintCreation,
    IndexCreation,
)
from cypherql.translator.statement import AccessMode

logger = logging.getLogger(__name__)


class Executor(ABC):
    """
    Abstract statement executor.

    Implement run() for a concrete driver; the catalogue helpers are built
    on top of it. Cancellation and timeouts belong to the implementation.

    Example implementations:
        - Neo4jExecutor: the official async neo4j driver
        - In-memory fakes in tests
    """

    @abstractmethod
    async def run(
        self,
        statement: str,
        params: Optional[dict[str, Any]] = None,
        database: Optional[str] = None,
        access_mode: AccessMode = AccessMode.READ,
    ) -> list[dict[str, Any]]:
        """
        Run one statement.

        Args:
            statement: Cypher text
            params: Statement parameters
            database: Target database, None for the default one
            access_mode: READ or WRITE transaction

        Returns:
            Rows as dicts keyed by column name
        """
        ...

    async def inspect_catalogue(
        self, kind: CatalogueKind, database: Optional[str] = None
    ) -> list[CatalogueEntry]:
        """List the live indexes or constraints."""
        rows = await self.run(CATALOGUE_QUERIES[kind], {}, database=database)
        return [CatalogueEntry.from_record(row) for row in rows]

    async def create_index(self, creation: IndexCreation, database: Optional[str] = None) -> None:
        logger.info("Creating %s index %s on :%s", creation.type.value, creation.name, creation.label)
        await self.run(creation.cypher(), {}, database=database, access_mode=AccessMode.WRITE)

    async def create_constraint(self, creation: ConstraintCreation, database: Optional[str] = None) -> None:
        logger.info("Creating constraint %s on :%s(%s)", creation.name, creation.label, creation.property)
        await self.run(creation.cypher(), {}, database=database, access_mode=AccessMode.WRITE)
