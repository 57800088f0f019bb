# -*- encoding: utf-8 -*-
"""
cypherql Index Reconciler - Diffs declared search/uniqueness metadata
against the live catalogue.

Search indexes are looked up by their declared name and must sit on one
of the entity's labels. Uniqueness constraints match on label and property
under any name:

    exists, all properties present   -> nothing to do
    exists, properties missing       -> problem, never altered
    exists, wrong type or labels     -> problem, never altered
    missing                          -> problem, or created with create=True

Every spec is checked before anything is raised, so one error reports all
problems at once. Creation only starts when no problem was found, and runs
one statement at a time; an executor failure aborts the remaining ones.
"""

import asyncio
import logging
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Optional, Union

from cypherql.exceptions import IndexesAndConstraintsError, ReconciliationProblem
from cypherql.indexer.catalogue import (
    UNIQUENESS_CONSTRAINT_TYPES,
    CatalogueEntry,
    CatalogueKind,
    ConstraintCreation,
    IndexCreation,
    IndexType,
)
from cypherql.schema.model import Entity, FulltextIndex, Schema, UniquenessSpec, VectorIndex

if TYPE_CHECKING:
    from cypherql.wrappers.executor import Executor

logger = logging.getLogger(__name__)


@dataclass
class ReconciliationPlan:
    """
    Outcome of diffing the schema against the catalogue.

    Attributes:
        problems: Mismatches that block success
        creations: Objects to create, in declaration order
        satisfied: Names of specs already satisfied by the live catalogue
    """
    problems: list[ReconciliationProblem] = field(default_factory=list)
    creations: list[Union[IndexCreation, ConstraintCreation]] = field(default_factory=list)
    satisfied: list[str] = field(default_factory=list)


class IndexReconciler:
    """
    Checks and optionally creates the indexes and constraints a schema needs.

    Example:
        reconciler = IndexReconciler(schema)
        await reconciler.assert_indexes_and_constraints(executor, create=True)
    """

    def __init__(self, schema: Schema):
        self.schema = schema

    async def assert_indexes_and_constraints(
        self,
        executor: "Executor",
        database: Optional[str] = None,
        create: bool = False,
    ) -> ReconciliationPlan:
        """
        Reconcile the schema with the live catalogue.

        Args:
            executor: Executor used to inspect and create
            database: Target database, None for the default one
            create: Create missing objects instead of reporting them

        Returns:
            The executed plan

        Raises:
            IndexesAndConstraintsError: When any spec is unresolved
        """
        indexes, constraints = await asyncio.gather(
            executor.inspect_catalogue(CatalogueKind.INDEX, database),
            executor.inspect_catalogue(CatalogueKind.CONSTRAINT, database),
        )
        plan = self.plan(indexes, constraints, create=create)
        if plan.problems:
            raise IndexesAndConstraintsError(plan.problems)

        for creation in plan.creations:
            if isinstance(creation, IndexCreation):
                await executor.create_index(creation, database)
            else:
                await executor.create_constraint(creation, database)
        logger.debug(
            "Reconciled %d specs, created %d", len(plan.satisfied) + len(plan.creations), len(plan.creations)
        )
        return plan

    def plan(
        self,
        indexes: list[CatalogueEntry],
        constraints: list[CatalogueEntry],
        create: bool = False,
    ) -> ReconciliationPlan:
        """Diff the schema against catalogue entries without touching the database."""
        plan = ReconciliationPlan()
        for entity in self.schema.entities.values():
            for index in entity.fulltext_indexes:
                self._check_fulltext(entity, index, indexes, create, plan)
            for index in entity.vector_indexes:
                self._check_vector(entity, index, indexes, create, plan)
            for spec in entity.uniqueness:
                self._check_uniqueness(entity, spec, constraints, create, plan)
        return plan

    # --- Indexes ---

    def _find_index(self, name: str, live: list[CatalogueEntry]) -> Optional[CatalogueEntry]:
        # compiled searches call the index by its declared name
        for entry in live:
            if entry.name == name:
                return entry
        return None

    def _conflict(self, entity: Entity, index_type: IndexType, existing: CatalogueEntry, prefix: str) -> Optional[str]:
        if existing.type != index_type.value:
            return f"{prefix} already exists as a {existing.type} index"
        if not existing.covers(entity.labels):
            labels = ", ".join(f"'{label}'" for label in entity.labels)
            return f"{prefix} already exists, but does not cover label {labels}"
        return None

    def _check_fulltext(
        self, entity: Entity, index: FulltextIndex, live: list[CatalogueEntry], create: bool, plan: ReconciliationPlan
    ) -> None:
        attributes = [entity.attribute(f) for f in index.fields]
        properties = tuple(a.db_name for a in attributes)
        existing = self._find_index(index.name, live)
        prefix = f"@fulltext index '{index.name}' on Node '{entity.name}'"

        if existing is None:
            if create:
                plan.creations.append(IndexCreation(
                    type=IndexType.FULLTEXT, name=index.name, label=entity.primary_label, properties=properties,
                ))
            else:
                plan.problems.append(ReconciliationProblem(
                    entity.name, index.name, "fulltext",
                    f"Missing @fulltext index '{index.name}' on Node '{entity.name}'",
                ))
            return

        conflict = self._conflict(entity, IndexType.FULLTEXT, existing, prefix)
        if conflict is not None:
            plan.problems.append(ReconciliationProblem(entity.name, index.name, "fulltext", conflict))
            return

        for attribute in attributes:
            if attribute.db_name in existing.properties:
                continue
            if create:
                message = f"{prefix} already exists, but is missing field '{attribute.name}'"
            elif attribute.is_aliased:
                message = f"{prefix} is missing field '{attribute.name}' aliased to field '{attribute.db_name}'"
            else:
                message = f"{prefix} is missing field '{attribute.name}'"
            plan.problems.append(ReconciliationProblem(entity.name, index.name, "fulltext", message))
            return
        plan.satisfied.append(index.name)

    def _check_vector(
        self, entity: Entity, index: VectorIndex, live: list[CatalogueEntry], create: bool, plan: ReconciliationPlan
    ) -> None:
        properties = (index.embedding_property,)
        existing = self._find_index(index.name, live)
        prefix = f"@vector index '{index.name}' on Node '{entity.name}'"

        if existing is None:
            if not create:
                plan.problems.append(ReconciliationProblem(
                    entity.name, index.name, "vector", f"Missing @vector index '{index.name}' on Node '{entity.name}'",
                ))
            elif index.dimensions is None:
                plan.problems.append(ReconciliationProblem(
                    entity.name, index.name, "vector", f"{prefix} cannot be created without 'dimensions'",
                ))
            else:
                plan.creations.append(IndexCreation(
                    type=IndexType.VECTOR,
                    name=index.name,
                    label=entity.primary_label,
                    properties=properties,
                    dimensions=index.dimensions,
                    similarity=index.similarity_function,
                ))
            return

        conflict = self._conflict(entity, IndexType.VECTOR, existing, prefix)
        if conflict is not None:
            plan.problems.append(ReconciliationProblem(entity.name, index.name, "vector", conflict))
            return

        if index.embedding_property not in existing.properties:
            if create:
                message = f"{prefix} already exists, but is missing field '{index.embedding_property}'"
            else:
                message = f"{prefix} is missing field '{index.embedding_property}'"
            plan.problems.append(ReconciliationProblem(entity.name, index.name, "vector", message))
            return
        plan.satisfied.append(index.name)

    # --- Constraints ---

    def _check_uniqueness(
        self,
        entity: Entity,
        spec: UniquenessSpec,
        live: list[CatalogueEntry],
        create: bool,
        plan: ReconciliationPlan,
    ) -> None:
        attribute = entity.attribute(spec.attribute)
        prop = attribute.db_name
        name = spec.constraint_name or f"{entity.name}_{prop}"

        for entry in live:
            if entry.type in UNIQUENESS_CONSTRAINT_TYPES and entry.covers(entity.labels) and entry.properties == (prop,):
                plan.satisfied.append(name)
                return

        if create:
            plan.creations.append(ConstraintCreation(name=name, label=entity.primary_label, property=prop))
        else:
            plan.problems.append(ReconciliationProblem(
                entity.name, name, "constraint", f"Missing constraint for {entity.name}.{prop}",
            ))


async def assert_indexes_and_constraints(
    schema: Schema,
    executor: "Executor",
    database: Optional[str] = None,
    create: bool = False,
) -> ReconciliationPlan:
    """
    Reconcile schema with the live catalogue.

    Raises:
        IndexesAndConstraintsError: When any spec is unresolved
    """
    return await IndexReconciler(schema).assert_indexes_and_constraints(executor, database=database, create=create)
