"""Tests for full-text search over the FTS5 shadow table."""
import pytest

from chronicle_index.storage.fts_index import FtsIndex


@pytest.fixture
def corpus(indexer, write_note):
    write_note("fox.md", "# Fox\n\nThe quick brown fox jumps over the lazy dog.")
    write_note("cat.md", "# Cat\n\nA brown cat sleeps. Brown is a colour.")
    write_note("fruit.md", "# Fruit\n\napple apple apple and a pear")
    write_note("runner.md", "# Runner\n\nShe was running every morning.")
    write_note("unique.md", "# Lonely\n\nxylophonist")
    indexer.full_index()
    return indexer.fts


class TestEscapeQuery:
    def test_wraps_as_phrase(self):
        assert FtsIndex.escape_query("  hello world ") == '"hello world"'

    def test_doubles_quotes(self):
        assert FtsIndex.escape_query('say "hi"') == '"say ""hi"""'

    def test_blank(self):
        assert FtsIndex.escape_query("   ") == ""


class TestSearch:
    """Tests for phrase matching, ranking and limits."""

    @pytest.mark.parametrize("query", ["", "   ", "\n\t"])
    def test_blank_query_returns_nothing(self, corpus, query):
        assert corpus.search(query) == []

    def test_blank_query_on_empty_store(self, database):
        assert FtsIndex(database).search("") == []

    def test_non_positive_limit(self, corpus):
        assert corpus.search("brown", limit=0) == []
        assert corpus.search("brown", limit=-3) == []

    def test_unique_token_finds_its_note(self, corpus):
        results = corpus.search("xylophonist")
        assert [r.path for r in results] == ["unique.md"]
        assert results[0].title == "Lonely"

    def test_absent_token(self, corpus):
        assert corpus.search("quasar") == []

    def test_phrase_order_matters(self, corpus):
        assert [r.path for r in corpus.search("quick brown")] == ["fox.md"]
        assert corpus.search("brown quick") == []

    def test_porter_stemming(self, corpus):
        assert [r.path for r in corpus.search("run")] == ["runner.md"]

    def test_case_insensitive(self, corpus):
        assert [r.path for r in corpus.search("XYLOPHONIST")] == ["unique.md"]

    @pytest.mark.parametrize(
        "query",
        ['"', 'fox"', '"unbalanced', "AND", "fox OR cat", "NOT fox", "title:fox",
         "fox*", "^fox", "NEAR(fox cat)", "(", "-", "a:b:c", "'; DROP TABLE notes; --"],
    )
    def test_syntax_characters_never_raise(self, corpus, query):
        assert isinstance(corpus.search(query), list)

    def test_operator_words_are_literal(self, corpus):
        # "fox OR cat" is a three-word phrase, present in no note
        assert corpus.search("fox OR cat") == []

    def test_limit_caps_results(self, corpus):
        assert len(corpus.search("brown")) == 2
        assert len(corpus.search("brown", limit=1)) == 1

    def test_ranking_is_ascending_and_stable(self, corpus):
        first = corpus.search("brown")
        second = corpus.search("brown")
        assert [r.id for r in first] == [r.id for r in second]
        ranks = [r.rank for r in first]
        assert ranks == sorted(ranks)

    def test_snippet_highlights_match(self, corpus):
        (result,) = corpus.search("xylophonist")
        assert "<mark>xylophonist</mark>" in result.snippet

    def test_match_count(self, corpus):
        (result,) = corpus.search("apple")
        assert result.match_count == 3

    def test_match_count_at_least_one(self, corpus):
        # Stemmed match without a literal occurrence
        (result,) = corpus.search("runs")
        assert result.path == "runner.md"
        assert result.match_count == 1

    def test_count(self, corpus):
        assert corpus.count() == 5
