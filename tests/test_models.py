"""Tests for the domain models."""
from chronicle_index.models.schema import (
    ExtractedLink,
    Frontmatter,
    Link,
    ParsedNote,
    SearchResult,
    format_timestamp,
)


class TestFormatTimestamp:
    def test_epoch(self):
        assert format_timestamp(0) == "1970-01-01T00:00:00Z"

    def test_fractional_seconds_dropped(self):
        assert format_timestamp(1_700_000_000.9) == "2023-11-14T22:13:20Z"


class TestParsedNote:
    def test_tags_without_frontmatter(self):
        assert ParsedNote(title="t").tags == []

    def test_tags_from_frontmatter(self):
        parsed = ParsedNote(title="t", frontmatter=Frontmatter(tags=["a"]))
        assert parsed.tags == ["a"]

    def test_link_defaults(self):
        link = ExtractedLink(target="x", line_number=1)
        assert link.display is None


class TestLink:
    def test_is_resolved(self):
        assert Link(id=1, source_id=1, target_path="x", target_id=2).is_resolved
        assert not Link(id=1, source_id=1, target_path="x").is_resolved


class TestSearchResult:
    def test_serialises(self):
        result = SearchResult(id=1, path="a.md", title="A", rank=-1.5)
        assert result.model_dump() == {
            "id": 1,
            "path": "a.md",
            "title": "A",
            "snippet": "",
            "rank": -1.5,
            "match_count": 1,
        }
