# -*- encoding: utf-8 -*-
"""
Index and constraint reconciliation for cypherql.

Diffs the full-text indexes, vector indexes and uniqueness constraints a
schema declares against the live catalogue:
- Reports missing objects and objects missing properties
- Optionally creates missing objects with CREATE ... IF NOT EXISTS
- Never alters an existing object
"""

from cypherql.indexer.catalogue import (
    CatalogueKind,
    CatalogueEntry,
    IndexType,
    IndexCreation,
    ConstraintCreation,
    UNIQUENESS_CONSTRAINT_TYPES,
)
from cypherql.indexer.reconciler import (
    IndexReconciler,
    ReconciliationPlan,
    assert_indexes_and_constraints,
)

__all__ = [
    # Catalogue
    "CatalogueKind",
    "CatalogueEntry",
    "IndexType",
    "IndexCreation",
    "ConstraintCreation",
    "UNIQUENESS_CONSTRAINT_TYPES",
    # Reconciliation
    "IndexReconciler",
    "ReconciliationPlan",
    "assert_indexes_and_constraints",
]
