"""
Tests for full-text and vector search operations of the cypherql Query Compiler.
"""

import pytest

from cypherql.config import CypherQLConfig
from cypherql.exceptions import QueryValidationError
from cypherql.schema import RootFieldKind
from cypherql.translator import QueryCompiler


def lines(*rows):
    return "\n".join(rows)


class TestFulltextSearch:
    """Tests for <plural>Fulltext<Index> root fields."""

    def test_score_filter_and_sort(self, compile_one):
        statement = compile_one(
            '{ moviesFulltextMovieTitle(phrase: "matrix", where: { score: { min: 0.5 } }, sort: [{ score: DESC }]) '
            "{ score movie { title } } }"
        )

        assert statement.cypher == lines(
            'CALL db.index.fulltext.queryNodes("MovieTitle", $param0) YIELD node AS this0, score AS var1',
            "WHERE ($param1 IN labels(this0) AND var1 >= $param2)",
            "WITH *",
            "ORDER BY var1 DESC",
            "RETURN { score: var1, movie: this0 { .title } } AS this",
        )
        assert statement.params == {"param0": "matrix", "param1": "Movie", "param2": 0.5}
        assert statement.kind == RootFieldKind.FULLTEXT
        assert statement.multiple_rows

    def test_sort_by_score_without_selecting_it(self, compile_one):
        statement = compile_one(
            '{ moviesFulltextMovieTitle(phrase: "matrix", sort: [{ score: DESC }]) { movie { title } } }'
        )

        assert "ORDER BY var1 DESC" in statement.cypher
        assert statement.cypher.endswith("RETURN { movie: this0 { .title } } AS this")

    def test_max_zero_is_applied(self, compile_one):
        statement = compile_one(
            '{ moviesFulltextMovieTitle(phrase: "matrix", where: { score: { max: 0 } }) { score } }'
        )

        assert "WHERE ($param1 IN labels(this0) AND var1 <= $param2)" in statement.cypher
        assert statement.params["param2"] == 0.0

    def test_node_filter_sort_and_page(self, compile_one):
        statement = compile_one(
            '{ moviesFulltextMovieDescription(phrase: "heist", where: { movie: { released_GT: 1990 } }, '
            "sort: [{ movie: { released: ASC } }], limit: 5) { movie { description } } }"
        )

        assert statement.cypher == lines(
            'CALL db.index.fulltext.queryNodes("MovieDescription", $param0) YIELD node AS this0, score AS var1',
            "WHERE ($param1 IN labels(this0) AND this0.released > $param2)",
            "WITH *",
            "ORDER BY this0.released ASC",
            "LIMIT $param3",
            "RETURN { movie: this0 { description: this0.plot } } AS this",
        )

    def test_rows_are_a_list(self, compile_one):
        statement = compile_one('{ moviesFulltextMovieTitle(phrase: "matrix") { score movie { title } } }')

        rows = [{"this": {"score": 2.5, "movie": {"title": "The Matrix"}}}]

        assert statement.shape_rows(rows) == [{"score": 2.5, "movie": {"title": "The Matrix"}}]

    @pytest.mark.parametrize("source, message", [
        ("{ moviesFulltextMovieTitle { score } }", "Search on 'MovieTitle' requires a 'phrase'"),
        ('{ moviesFulltextMovieTitle(phrase: "a") { title } }', "Unknown field 'title' on 'MovieFulltextResult'"),
        ('{ moviesFulltextMovieTitle(phrase: "a", where: { title: "x" }) { score } }',
         "Unknown field 'title' in search filter"),
        ('{ moviesFulltextMovieTitle(phrase: "a", where: { score: { above: 1 } }) { score } }', "above"),
        ('{ moviesFulltextMovieTitle(phrase: 7) { score } }', "String cannot represent a non string value: 7"),
    ])
    def test_rejected(self, compile_one, source, message):
        with pytest.raises(QueryValidationError) as exc_info:
            compile_one(source)
        assert message in str(exc_info.value)


class TestVectorSearch:
    """Tests for @vector query fields."""

    def test_vector_query(self, compile_one):
        statement = compile_one(
            "{ similarMovies(vector: [0.1, 0.2, 0.3], first: 2) { edges { score node { title } } } }"
        )

        assert statement.cypher == lines(
            'CALL db.index.vector.queryNodes("movie_embeddings", 2, $param0) YIELD node AS this0, score AS var1',
            "WHERE $param1 IN labels(this0)",
            "WITH collect({ node: this0, score: var1 }) AS edges",
            "WITH edges, size(edges) AS totalCount",
            "CALL {",
            "    WITH edges",
            "    UNWIND edges AS edge",
            "    WITH edge.node AS this0, edge.score AS var1",
            "    WITH *",
            "    LIMIT $param2",
            "    RETURN collect({ score: var1, node: this0 { .title } }) AS var2",
            "}",
            "RETURN { edges: var2, totalCount: totalCount } AS this",
        )
        assert statement.params == {"param0": [0.1, 0.2, 0.3], "param1": "Movie", "param2": 2}
        assert statement.kind == RootFieldKind.VECTOR

    def test_default_neighbour_count(self, compile_one):
        statement = compile_one("{ similarMovies(vector: [1, 0, 0]) { edges { node { title } } } }")

        assert 'queryNodes("movie_embeddings", 4, $param0)' in statement.cypher
        assert "LIMIT" not in statement.cypher
        assert statement.params["param0"] == [1.0, 0.0, 0.0]

    def test_after_cursor_widens_neighbours(self, compile_one):
        statement = compile_one(
            '{ similarMovies(vector: [1, 0, 0], first: 2, after: "YXJyYXljb25uZWN0aW9uOjA=") '
            "{ edges { node { title } } } }"
        )

        assert 'queryNodes("movie_embeddings", 3, $param0)' in statement.cypher

    def test_score_filter_and_node_sort(self, compile_one):
        statement = compile_one(
            "{ similarMovies(vector: [1, 0, 0], where: { score: { min: 0.9 } }, sort: [{ node: { title: ASC } }]) "
            "{ edges { node { title } } } }"
        )

        assert "WHERE ($param1 IN labels(this0) AND var1 >= $param2)" in statement.cypher
        assert "    ORDER BY this0.title ASC" in statement.cypher

    def test_edges_are_shaped(self, compile_one):
        statement = compile_one(
            "{ similarMovies(vector: [1, 0, 0], first: 1) { edges { cursor score node { title } } } }"
        )

        data = statement.shape_rows([{"this": {"edges": [{"score": 0.98, "node": {"title": "Heat"}}], "totalCount": 1}}])

        assert data == {"edges": [{"cursor": "YXJyYXljb25uZWN0aW9uOjA=", "score": 0.98, "node": {"title": "Heat"}}]}

    def test_phrase_search(self, schema, parser):
        compiler = QueryCompiler(schema, CypherQLConfig(vector_providers={"OpenAI": {"token": "sk-test"}}))
        operation = parser.parse_document(
            '{ similarMovies(phrase: "bank heist", first: 1) { edges { node { title } } } }'
        ).operation()

        [statement] = compiler.compile(operation)

        assert statement.cypher.startswith(lines(
            'WITH genai.vector.encode($param0, "OpenAI", $param1) AS var0',
            'CALL db.index.vector.queryNodes("movie_embeddings", 1, var0) YIELD node AS this1, score AS var2',
        ))
        assert statement.params["param0"] == "bank heist"
        assert statement.params["param1"] == {"token": "sk-test"}

    @pytest.mark.parametrize("source, message", [
        ("{ similarMovies(vector: [0.1, 0.2]) { totalCount } }",
         "Vector for index 'movie_embeddings' must have 3 dimensions, got 2"),
        ('{ similarMovies(phrase: "heist") { totalCount } }',
         "No settings configured for vector provider 'OpenAI'"),
        ("{ similarMovies { totalCount } }", "requires exactly one of 'vector' or 'phrase'"),
        ('{ similarMovies(vector: [1, 0, 0], phrase: "heist") { totalCount } }',
         "requires exactly one of 'vector' or 'phrase'"),
        ('{ similarMovies(vector: ["a", 0, 0]) { totalCount } }', "Float cannot represent non numeric value"),
        ("{ similarMovies(vector: [1, 0, 0]) { edges { rank } } }", "Unknown field 'rank' on 'MovieVectorEdge'"),
    ])
    def test_rejected(self, compile_one, source, message):
        with pytest.raises(QueryValidationError) as exc_info:
            compile_one(source)
        assert message in str(exc_info.value)
