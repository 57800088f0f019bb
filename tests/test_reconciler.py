"""
Tests for the cypherql Index Reconciler.

The live catalogue is served by the FakeExecutor from conftest; created
objects show up as CREATE statements it recorded.
"""

import pytest

from cypherql.exceptions import IndexesAndConstraintsError
from cypherql.indexer import (
    CatalogueEntry,
    ConstraintCreation,
    IndexCreation,
    IndexReconciler,
    IndexType,
    assert_indexes_and_constraints,
)
from cypherql.schema import build_schema
from cypherql.translator import AccessMode


def fulltext(name, labels, properties, entity_type="NODE"):
    return {
        "name": name,
        "type": "FULLTEXT",
        "entityType": entity_type,
        "labelsOrTypes": labels,
        "properties": properties,
    }


def vector(name, labels, properties):
    return {"name": name, "type": "VECTOR", "entityType": "NODE", "labelsOrTypes": labels, "properties": properties}


def uniqueness(name, labels, properties, constraint_type="UNIQUENESS"):
    return {
        "name": name,
        "type": constraint_type,
        "entityType": "NODE",
        "labelsOrTypes": labels,
        "properties": properties,
    }


MOVIE_CATALOGUE = {
    "indexes": [
        fulltext("MovieTitle", ["Movie"], ["title"]),
        fulltext("MovieDescription", ["Movie"], ["plot"]),
        vector("movie_embeddings", ["Movie"], ["embedding"]),
    ],
    "constraints": [
        uniqueness("Movie_id", ["Movie"], ["id"]),
        uniqueness("Book_isbn", ["Book"], ["isbn"]),
    ],
}


async def problems_of(schema, executor, create=False):
    with pytest.raises(IndexesAndConstraintsError) as exc_info:
        await assert_indexes_and_constraints(schema, executor, create=create)
    return [p.message for p in exc_info.value.problems]


class TestMissingObjects:
    """Tests for declared objects absent from the catalogue."""

    @pytest.mark.asyncio
    async def test_every_problem_is_reported(self, schema, make_executor):
        executor = make_executor()

        messages = await problems_of(schema, executor)

        assert messages == [
            "Missing @fulltext index 'MovieTitle' on Node 'Movie'",
            "Missing @fulltext index 'MovieDescription' on Node 'Movie'",
            "Missing @vector index 'movie_embeddings' on Node 'Movie'",
            "Missing constraint for Movie.id",
            "Missing constraint for Book.isbn",
        ]
        assert executor.created() == []

    @pytest.mark.asyncio
    async def test_error_summary(self, make_executor):
        schema = build_schema('type Book { isbn: String! @unique }')

        with pytest.raises(IndexesAndConstraintsError) as exc_info:
            await assert_indexes_and_constraints(schema, make_executor())

        assert str(exc_info.value) == "Missing constraint for Book.isbn"
        assert exc_info.value.to_dict()["problems"] == [{
            "entity": "Book",
            "name": "Book_isbn",
            "kind": "constraint",
            "message": "Missing constraint for Book.isbn",
        }]

    @pytest.mark.asyncio
    async def test_create_missing(self, schema, make_executor):
        executor = make_executor()

        plan = await assert_indexes_and_constraints(schema, executor, create=True)

        assert executor.created() == [
            "CREATE FULLTEXT INDEX MovieTitle IF NOT EXISTS FOR (n:Movie) ON EACH [n.title]",
            "CREATE FULLTEXT INDEX MovieDescription IF NOT EXISTS FOR (n:Movie) ON EACH [n.plot]",
            "CREATE VECTOR INDEX movie_embeddings IF NOT EXISTS FOR (n:Movie) ON n.embedding "
            "OPTIONS { indexConfig: { `vector.dimensions`: 3, `vector.similarity_function`: 'cosine' } }",
            "CREATE CONSTRAINT Movie_id IF NOT EXISTS FOR (n:Movie) REQUIRE n.id IS UNIQUE",
            "CREATE CONSTRAINT Book_isbn IF NOT EXISTS FOR (n:Book) REQUIRE n.isbn IS UNIQUE",
        ]
        assert all(call[3] == AccessMode.WRITE for call in executor.calls if call[0].startswith("CREATE"))
        assert len(plan.creations) == 5

    @pytest.mark.asyncio
    async def test_custom_constraint_name(self, make_executor):
        schema = build_schema('type Book { isbn: String! @unique(constraintName: "book_isbn_unique") }')
        executor = make_executor()

        await assert_indexes_and_constraints(schema, executor, create=True)

        assert executor.created() == [
            "CREATE CONSTRAINT book_isbn_unique IF NOT EXISTS FOR (n:Book) REQUIRE n.isbn IS UNIQUE",
        ]

    @pytest.mark.asyncio
    async def test_aliased_constraint(self, make_executor):
        schema = build_schema(
            'type Book { isbn: String! @unique @alias(property: "internationalStandardBookNumber") }'
        )

        assert await problems_of(schema, make_executor()) == [
            "Missing constraint for Book.internationalStandardBookNumber",
        ]

    @pytest.mark.asyncio
    async def test_id_without_uniqueness_needs_nothing(self, make_executor):
        schema = build_schema("type User { id: ID! @id(unique: false) }")
        executor = make_executor()

        plan = await assert_indexes_and_constraints(schema, executor, create=True)

        assert plan.creations == []
        assert executor.created() == []

    @pytest.mark.asyncio
    async def test_vector_without_dimensions(self, make_executor):
        schema = build_schema(
            'type Movie @vector(indexes: [{ indexName: "plots", embeddingProperty: "plotEmbedding" }]) '
            "{ title: String }"
        )

        assert await problems_of(schema, make_executor(), create=True) == [
            "@vector index 'plots' on Node 'Movie' cannot be created without 'dimensions'",
        ]


class TestExistingObjects:
    """Tests for declared objects found in the catalogue."""

    @pytest.mark.asyncio
    async def test_everything_present(self, schema, make_executor):
        executor = make_executor(**MOVIE_CATALOGUE)

        plan = await assert_indexes_and_constraints(schema, executor, create=True)

        assert plan.satisfied == ["MovieTitle", "MovieDescription", "movie_embeddings", "Movie_id", "Book_isbn"]
        assert executor.created() == []

    @pytest.mark.asyncio
    async def test_fulltext_missing_field(self, make_executor):
        schema = build_schema('''
            type Movie @fulltext(indexes: [{ indexName: "MovieText", fields: ["title", "description"] }]) {
                title: String
                description: String
            }
        ''')
        executor = make_executor(indexes=[fulltext("MovieText", ["Movie"], ["title"])])

        assert await problems_of(schema, executor) == [
            "@fulltext index 'MovieText' on Node 'Movie' is missing field 'description'",
        ]

    @pytest.mark.asyncio
    async def test_fulltext_missing_aliased_field(self, make_executor):
        schema = build_schema('''
            type Movie @fulltext(indexes: [{ indexName: "MovieText", fields: ["title", "description"] }]) {
                title: String
                description: String @alias(property: "plot")
            }
        ''')
        executor = make_executor(indexes=[fulltext("MovieText", ["Movie"], ["title"])])

        assert await problems_of(schema, executor) == [
            "@fulltext index 'MovieText' on Node 'Movie' is missing field 'description' aliased to field 'plot'",
        ]

    @pytest.mark.asyncio
    async def test_existing_index_is_never_altered(self, make_executor):
        schema = build_schema('''
            type Movie @fulltext(indexes: [{ indexName: "MovieText", fields: ["title", "description"] }]) {
                title: String
                description: String
            }
        ''')
        executor = make_executor(indexes=[fulltext("MovieText", ["Movie"], ["title"])])

        assert await problems_of(schema, executor, create=True) == [
            "@fulltext index 'MovieText' on Node 'Movie' already exists, but is missing field 'description'",
        ]
        assert executor.created() == []

    @pytest.mark.asyncio
    async def test_index_on_additional_label(self, make_executor):
        schema = build_schema('''
            type Film @node(labels: ["Film", "Media"])
                @fulltext(indexes: [{ indexName: "FilmTitle", fields: ["title"] }]) {
                title: String
            }
        ''')
        executor = make_executor(indexes=[fulltext("FilmTitle", ["Media"], ["title", "subtitle"])])

        plan = await assert_indexes_and_constraints(schema, executor, create=True)

        assert plan.satisfied == ["FilmTitle"]
        assert executor.created() == []

    @pytest.mark.asyncio
    async def test_relationship_index_does_not_cover_nodes(self, make_executor):
        schema = build_schema(
            'type Movie @fulltext(indexes: [{ indexName: "MovieTitle", fields: ["title"] }]) { title: String }'
        )
        executor = make_executor(indexes=[fulltext("rel_title", ["Movie"], ["title"], entity_type="RELATIONSHIP")])

        assert await problems_of(schema, executor) == ["Missing @fulltext index 'MovieTitle' on Node 'Movie'"]

    @pytest.mark.asyncio
    @pytest.mark.parametrize("create", [False, True])
    async def test_same_name_on_other_label(self, make_executor, create):
        schema = build_schema(
            'type Movie @fulltext(indexes: [{ indexName: "MovieTitle", fields: ["title"] }]) { title: String }'
        )
        executor = make_executor(indexes=[fulltext("MovieTitle", ["Other"], ["title"])])

        assert await problems_of(schema, executor, create=create) == [
            "@fulltext index 'MovieTitle' on Node 'Movie' already exists, but does not cover label 'Movie'",
        ]
        assert executor.created() == []

    @pytest.mark.asyncio
    async def test_same_name_with_other_type(self, make_executor):
        schema = build_schema(
            'type Movie @fulltext(indexes: [{ indexName: "MovieTitle", fields: ["title"] }]) { title: String }'
        )
        executor = make_executor(indexes=[vector("MovieTitle", ["Movie"], ["title"])])

        assert await problems_of(schema, executor, create=True) == [
            "@fulltext index 'MovieTitle' on Node 'Movie' already exists as a VECTOR index",
        ]

    @pytest.mark.asyncio
    async def test_index_under_another_name_does_not_count(self, make_executor):
        schema = build_schema(
            'type Movie @fulltext(indexes: [{ indexName: "MovieTitle", fields: ["title"] }]) { title: String }'
        )
        executor = make_executor(indexes=[fulltext("some_other_index", ["Movie"], ["title"])])

        plan = await assert_indexes_and_constraints(schema, executor, create=True)

        assert plan.satisfied == []
        assert executor.created() == [
            "CREATE FULLTEXT INDEX MovieTitle IF NOT EXISTS FOR (n:Movie) ON EACH [n.title]",
        ]

    @pytest.mark.asyncio
    async def test_vector_on_other_label(self, make_executor):
        schema = build_schema(
            'type Movie @vector(indexes: [{ indexName: "plots", embeddingProperty: "plotEmbedding", dimensions: 3 }]) '
            "{ title: String }"
        )
        executor = make_executor(indexes=[vector("plots", ["Book"], ["plotEmbedding"])])

        assert await problems_of(schema, executor) == [
            "@vector index 'plots' on Node 'Movie' already exists, but does not cover label 'Movie'",
        ]

    @pytest.mark.asyncio
    @pytest.mark.parametrize("constraint_type", ["UNIQUENESS", "NODE_PROPERTY_UNIQUENESS", "NODE_KEY"])
    async def test_constraint_under_any_name(self, make_executor, constraint_type):
        schema = build_schema("type Book { isbn: String! @unique }")
        executor = make_executor(constraints=[uniqueness("legacy", ["Book"], ["isbn"], constraint_type)])

        plan = await assert_indexes_and_constraints(schema, executor)

        assert plan.satisfied == ["Book_isbn"]

    @pytest.mark.asyncio
    async def test_composite_constraint_does_not_count(self, make_executor):
        schema = build_schema("type Book { isbn: String! @unique title: String }")
        executor = make_executor(constraints=[uniqueness("composite", ["Book"], ["isbn", "title"])])

        assert await problems_of(schema, executor) == ["Missing constraint for Book.isbn"]


class TestReconciliationRuns:
    """Tests for planning, repeat runs and executor failures."""

    def test_second_plan_after_creation_is_empty(self, schema):
        reconciler = IndexReconciler(schema)
        first = reconciler.plan([], [], create=True)

        indexes = [
            CatalogueEntry(c.name, c.type.value, labels_or_types=(c.label,), properties=c.properties)
            for c in first.creations if isinstance(c, IndexCreation)
        ]
        constraints = [
            CatalogueEntry(c.name, "UNIQUENESS", labels_or_types=(c.label,), properties=(c.property,))
            for c in first.creations if isinstance(c, ConstraintCreation)
        ]
        second = reconciler.plan(indexes, constraints, create=True)

        assert second.creations == []
        assert second.problems == []

    def test_plan_records_creation_details(self, schema):
        plan = IndexReconciler(schema).plan([], [], create=True)

        vector_creation = plan.creations[2]
        assert vector_creation.type == IndexType.VECTOR
        assert vector_creation.dimensions == 3
        assert vector_creation.similarity == "cosine"

    @pytest.mark.asyncio
    async def test_database_is_passed_through(self, schema, make_executor):
        executor = make_executor(**MOVIE_CATALOGUE)

        await assert_indexes_and_constraints(schema, executor, database="movies")

        assert {call[2] for call in executor.calls} == {"movies"}

    @pytest.mark.asyncio
    async def test_failure_stops_creation(self, make_executor):
        schema = build_schema('''
            type Book { isbn: String! @unique }
            type Author { email: String! @unique }
        ''')
        executor = make_executor(errors=[RuntimeError("connection lost")])

        with pytest.raises(RuntimeError):
            await assert_indexes_and_constraints(schema, executor, create=True)

        assert executor.created() == [
            "CREATE CONSTRAINT Book_isbn IF NOT EXISTS FOR (n:Book) REQUIRE n.isbn IS UNIQUE",
        ]
