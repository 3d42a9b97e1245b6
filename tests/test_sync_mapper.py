"""Tests for object <-> card mapping and content hashing.

Covers:
- URL extraction priority and the no-URL skip signal
- Hash determinism across non-syncable fields and key order
- Frontmatter -> card metadata mapping (authors, dates, site name)
- Card -> frontmatter/body for URL and note cards
- Card -> filename and slugify
- Collection tag extraction and naming
"""

from __future__ import annotations

from datetime import date

import pytest

from semble_sync.sync.mapper import (
    _to_iso_date,
    card_to_filename,
    card_to_frontmatter,
    compute_object_hash,
    extract_collection_tags,
    extract_url,
    format_collection_name,
    get_local_id,
    object_to_card,
    slugify,
    time_suffix,
)
from semble_sync.sync.models import (
    NoteCard,
    NoteContent,
    UrlCard,
    UrlContent,
    UrlMetadata,
    card_to_record,
    parse_card,
)

CARD_URI = "at://did:plc:tester/network.cosmik.card/3kabc"


# ---------------------------------------------------------------------------
# Identity helpers
# ---------------------------------------------------------------------------


class TestIdentity:
    """Tests for get_local_id / extract_url / collection tags."""

    def test_local_id_prefers_citation_key(self, make_object):
        obj = make_object("file-stem", citation_key="smith2020")
        assert get_local_id(obj) == "smith2020"

    def test_local_id_falls_back_to_object_id(self, make_object):
        assert get_local_id(make_object("file-stem")) == "file-stem"

    def test_url_field_priority(self):
        fm = {"href": "https://d.org", "link": "https://c.org", "website": "https://b.org"}
        assert extract_url(fm) == "https://b.org"
        fm["url"] = "https://a.org"
        assert extract_url(fm) == "https://a.org"

    def test_empty_url_falls_through_to_next_field(self):
        assert extract_url({"url": "", "link": "https://c.org"}) == "https://c.org"

    def test_no_url_returns_none(self):
        assert extract_url({"url": "   ", "title": "x"}) is None
        assert extract_url({"url": 42}) is None

    def test_collection_tags_extracted_and_deduplicated(self, make_object):
        obj = make_object(
            "a",
            tags=["collection:data", "ml", "collection:theory", "collection:data", 7],
        )
        assert extract_collection_tags(obj) == ["data", "theory"]

    def test_collection_tags_require_a_list(self, make_object):
        assert extract_collection_tags(make_object("a", tags="collection:data")) == []

    def test_format_collection_name(self):
        assert format_collection_name("refs") == "refs"
        assert format_collection_name("refs", "data") == "refs:data"


# ---------------------------------------------------------------------------
# Object -> Card
# ---------------------------------------------------------------------------


class TestObjectToCard:
    """Tests for object_to_card()."""

    def test_no_url_yields_no_card(self, make_object):
        assert object_to_card(make_object("a", title="No link")) is None

    def test_maps_known_fields(self, make_object):
        obj = make_object(
            "a",
            url="https://x.org/p",
            title="T",
            abstract="About things",
            author=["Ada Lovelace", "Alan Turing"],
            year=1950,
            booktitle="Proceedings",
            type="article",
        )
        card = object_to_card(obj)
        meta = card.content.metadata

        assert card.type == "URL"
        assert card.url == "https://x.org/p"
        assert card.content.url == "https://x.org/p"
        assert meta.title == "T"
        assert meta.description == "About things"
        assert meta.author == "Ada Lovelace, Alan Turing"
        assert meta.published_date == "1950-01-01T00:00:00.000Z"
        assert meta.site_name == "Proceedings"
        assert meta.type == "article"

    def test_journal_preferred_over_booktitle(self, make_object):
        obj = make_object("a", url="https://x.org", journal="J", booktitle="B")
        assert object_to_card(obj).content.metadata.site_name == "J"

    def test_unparseable_date_is_dropped(self, make_object):
        obj = make_object("a", url="https://x.org", date="sometime soon")
        assert object_to_card(obj).content.metadata.published_date is None

    def test_record_uses_camel_case_and_omits_empty_fields(self, make_object):
        obj = make_object("a", url="https://x.org", date="2021-03-04")
        record = card_to_record(object_to_card(obj))
        assert record == {
            "type": "URL",
            "content": {
                "url": "https://x.org",
                "metadata": {"publishedDate": "2021-03-04T00:00:00.000Z"},
            },
            "url": "https://x.org",
        }


class TestIsoDate:
    """Tests for _to_iso_date()."""

    @pytest.mark.parametrize(
        "value, expected",
        [
            (2020, "2020-01-01T00:00:00.000Z"),
            ("2020", "2020-01-01T00:00:00.000Z"),
            ("2020-07", "2020-07-01T00:00:00.000Z"),
            ("2020-07-15", "2020-07-15T00:00:00.000Z"),
            (date(2020, 7, 15), "2020-07-15T00:00:00.000Z"),
            ("2020-07-15T10:30:00Z", "2020-07-15T10:30:00.000Z"),
            ("2020-07-15T12:30:00+02:00", "2020-07-15T10:30:00.000Z"),
        ],
    )
    def test_parses_common_forms(self, value, expected):
        assert _to_iso_date(value) == expected

    @pytest.mark.parametrize("value", ["soon", True, None, [2020]])
    def test_rejects_other_values(self, value):
        assert _to_iso_date(value) is None


# ---------------------------------------------------------------------------
# Hashing
# ---------------------------------------------------------------------------


class TestObjectHash:
    """Tests for compute_object_hash()."""

    def test_identical_syncable_fields_hash_identically(self, make_object):
        fields = dict(
            url="https://x.org/p",
            title="T",
            abstract="A",
            author=["X", "Y"],
            year=2020,
            journal="J",
        )
        a = make_object("a", body="one body", visibility="public", tags=["x"], **fields)
        b = make_object(
            "b",
            body="another body",
            visibility="private",
            tags=["collection:y"],
            citation_key="other",
            **fields,
        )
        assert compute_object_hash(a) == compute_object_hash(b)

    def test_key_order_does_not_matter(self, make_object):
        a = make_object("a", url="https://x.org", title="T", author="X")
        b = make_object("a", author="X", title="T", url="https://x.org")
        assert compute_object_hash(a) == compute_object_hash(b)

    def test_title_change_changes_hash(self, make_object):
        a = make_object("a", url="https://x.org", title="T")
        b = make_object("a", url="https://x.org", title="T2")
        assert compute_object_hash(a) != compute_object_hash(b)

    def test_hash_is_sixteen_hex_chars(self, make_object):
        digest = compute_object_hash(make_object("a", url="https://x.org"))
        assert len(digest) == 16
        int(digest, 16)

    def test_no_url_yields_no_hash(self, make_object):
        assert compute_object_hash(make_object("a", url="")) is None
        assert compute_object_hash(make_object("a", title="T")) is None


# ---------------------------------------------------------------------------
# Card -> Object
# ---------------------------------------------------------------------------


class TestCardToFrontmatter:
    """Tests for card_to_frontmatter()."""

    def test_url_card(self):
        card = UrlCard(
            content=UrlContent(
                url="https://www.example.org/a",
                metadata=UrlMetadata(
                    title="A Paper",
                    description="Abstract text",
                    author="Ada",
                    published_date="2019-06-01T00:00:00.000Z",
                    site_name="Journal",
                ),
            ),
            url="https://www.example.org/a",
        )
        fm, body = card_to_frontmatter(card, CARD_URI)

        assert fm["visibility"] == "private"
        assert fm["semble_uri"] == CARD_URI
        assert fm["semble_synced_at"]
        assert fm["type"] == "bibtex_entry"
        assert fm["url"] == "https://www.example.org/a"
        assert fm["title"] == "A Paper"
        assert fm["abstract"] == "Abstract text"
        assert fm["author"] == "Ada"
        assert fm["date"] == "2019-06-01"
        assert fm["year"] == 2019
        assert fm["journal"] == "Journal"
        assert fm["citation_key"].startswith("www-example-org-2019-")
        assert body.startswith("Imported from Semble on ")
        assert body.endswith("Original URL: https://www.example.org/a")

    def test_url_card_citation_keys_are_unique(self):
        card = UrlCard(content=UrlContent(url="https://x.org"))
        first, _ = card_to_frontmatter(card, CARD_URI)
        second, _ = card_to_frontmatter(card, CARD_URI)
        assert first["citation_key"] != second["citation_key"]

    def test_note_card_heading_becomes_title(self):
        card = NoteCard(content=NoteContent(text="# My Note\n\nSome thoughts."))
        fm, body = card_to_frontmatter(card, CARD_URI)

        assert fm["type"] == "note"
        assert fm["title"] == "My Note"
        assert fm["note_id"].startswith("semble-note-")
        assert fm["id"] == fm["note_id"]
        assert fm["visibility"] == "private"
        assert body == "Some thoughts."

    def test_note_card_without_heading(self):
        card = NoteCard(content=NoteContent(text="just text"))
        fm, body = card_to_frontmatter(card, CARD_URI)
        assert "title" not in fm
        assert body == "just text"

    def test_heading_only_note_gets_placeholder_body(self):
        card = NoteCard(content=NoteContent(text="# Only a title\n"))
        _, body = card_to_frontmatter(card, CARD_URI)
        assert body.startswith("Imported from Semble on ")


class TestFilenames:
    """Tests for card_to_filename() and slugify()."""

    def test_slugify(self):
        assert slugify("  Attention Is All You Need!  ") == "attention-is-all-you-need"
        assert slugify("a" * 80) == "a" * 50
        assert slugify("!!!") == ""

    def test_url_card_uses_title(self):
        card = UrlCard(
            content=UrlContent(
                url="https://x.org", metadata=UrlMetadata(title="Deep Learning 101")
            )
        )
        assert card_to_filename(card) == "deep-learning-101.md"

    def test_url_card_falls_back_to_host(self):
        card = UrlCard(content=UrlContent(url="https://www.example.org/a"))
        assert card_to_filename(card) == "www-example-org.md"

    def test_url_card_without_host(self):
        card = UrlCard(content=UrlContent(url="not a url"))
        assert card_to_filename(card) == "reference.md"

    def test_note_filenames_always_unique(self):
        card = NoteCard(content=NoteContent(text="# Hello World"))
        first = card_to_filename(card)
        second = card_to_filename(card)
        assert first.startswith("hello-world-")
        assert first.endswith(".md")
        assert first != second

    def test_note_without_heading_uses_text(self):
        card = NoteCard(content=NoteContent(text="Remember the milk\nand eggs"))
        assert card_to_filename(card).startswith("remember-the-milk-")
        empty = NoteCard(content=NoteContent(text=""))
        assert card_to_filename(empty).startswith("note-")

    def test_time_suffix_strictly_increases(self):
        values = [int(time_suffix(), 36) for _ in range(5)]
        assert values == sorted(set(values))


class TestParseCard:
    """Tests for parse_card()."""

    def test_parses_url_record(self):
        card = parse_card(
            {
                "$type": "network.cosmik.card",
                "type": "URL",
                "content": {
                    "url": "https://x.org",
                    "metadata": {"title": "T", "siteName": "S"},
                },
                "createdAt": "2024-01-01T00:00:00.000Z",
            }
        )
        assert isinstance(card, UrlCard)
        assert card.content.metadata.site_name == "S"
        assert card.created_at == "2024-01-01T00:00:00.000Z"

    def test_parses_note_record(self):
        card = parse_card({"type": "NOTE", "content": {"text": "hi"}})
        assert isinstance(card, NoteCard)
        assert card.content.text == "hi"

    def test_unknown_type_is_rejected(self):
        from pydantic import ValidationError

        with pytest.raises(ValidationError):
            parse_card({"type": "VIDEO", "content": {}})
