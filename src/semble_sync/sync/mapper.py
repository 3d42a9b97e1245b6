"""Bidirectional mapping between vault objects and Semble cards.

Push direction: ``object_to_card()`` turns an object's frontmatter into a
URL card, or returns ``None`` when the object has no URL (skip signal).

Pull direction: ``card_to_frontmatter()`` and ``card_to_filename()`` turn a
remote card into the frontmatter, body and file name of a new object.

Also hosts the identity helpers shared by every phase: ``get_local_id()``,
``extract_url()``, ``extract_collection_tags()`` and
``format_collection_name()``.
"""

from __future__ import annotations

import re
import threading
import time
from datetime import date, datetime, timezone
from typing import Any
from urllib.parse import urlparse

from semble_sync.sync.models import (
    NoteCard,
    UrlCard,
    UrlContent,
    UrlMetadata,
    card_to_record,
)
from semble_sync.sync.state import card_hash, utc_now
from semble_sync.vault import VaultObject

URL_FIELDS = ("url", "website", "link", "href")
COLLECTION_TAG_PREFIX = "collection:"
SLUG_LENGTH = 50

_HEADING_RE = re.compile(r"^#[ \t]+(.+)$", re.MULTILINE)
_SLUG_RE = re.compile(r"[^a-z0-9]+")
_BASE36 = "0123456789abcdefghijklmnopqrstuvwxyz"


# ---------------------------------------------------------------------------
# Identity helpers
# ---------------------------------------------------------------------------


def get_local_id(obj: VaultObject) -> str:
    """Stable sync identity: ``citation_key`` if set, else the object id."""
    citation_key = obj.frontmatter.get("citation_key")
    if citation_key:
        return str(citation_key)
    return obj.id


def extract_url(frontmatter: dict[str, Any]) -> str | None:
    """Return the first non-empty URL field, checked in ``URL_FIELDS`` order."""
    for field in URL_FIELDS:
        value = frontmatter.get(field)
        if isinstance(value, str) and value.strip():
            return value.strip()
    return None


def extract_collection_tags(obj: VaultObject) -> list[str]:
    """Tag values after the ``collection:`` prefix, deduplicated, in order.

    ``["collection:data", "ml", "collection:data"]`` -> ``["data"]``
    """
    tags = obj.frontmatter.get("tags")
    if not isinstance(tags, list):
        return []

    result: list[str] = []
    for tag in tags:
        if not isinstance(tag, str) or not tag.startswith(COLLECTION_TAG_PREFIX):
            continue
        name = tag[len(COLLECTION_TAG_PREFIX):].strip()
        if name and name not in result:
            result.append(name)
    return result


def format_collection_name(project: str, tag: str | None = None) -> str:
    """``project`` for the project collection, ``project:tag`` otherwise."""
    if not tag:
        return project
    return f"{project}:{tag}"


# ---------------------------------------------------------------------------
# Object -> Card
# ---------------------------------------------------------------------------


def _to_iso_date(value: Any) -> str | None:
    """Normalise a date-ish frontmatter value to an ISO 8601 UTC timestamp.

    Accepts ``date``/``datetime`` objects (as produced by YAML), integer
    years and strings such as ``2021``, ``2021-03`` or ``2021-03-04``.
    Returns ``None`` when the value cannot be parsed.
    """
    parsed: datetime | None = None

    if isinstance(value, datetime):
        parsed = value
    elif isinstance(value, date):
        parsed = datetime(value.year, value.month, value.day)
    elif isinstance(value, int) and not isinstance(value, bool):
        if 0 < value < 10000:
            parsed = datetime(value, 1, 1)
    elif isinstance(value, str):
        text = value.strip()
        for fmt in ("%Y", "%Y-%m"):
            try:
                parsed = datetime.strptime(text, fmt)
                break
            except ValueError:
                continue
        if parsed is None:
            try:
                parsed = datetime.fromisoformat(text.replace("Z", "+00:00"))
            except ValueError:
                return None

    if parsed is None:
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    parsed = parsed.astimezone(timezone.utc)
    return parsed.strftime("%Y-%m-%dT%H:%M:%S.") + f"{parsed.microsecond // 1000:03d}Z"


def object_to_card(obj: VaultObject) -> UrlCard | None:
    """Build the URL card for *obj*.

    Field mapping: title -> title, abstract -> description, author (lists
    joined with ``", "``) -> author, date or year -> publishedDate,
    journal or booktitle -> siteName, type -> type.

    Returns:
        The card, or ``None`` if the object carries no URL.
    """
    fm = obj.frontmatter
    url = extract_url(fm)
    if not url:
        return None

    metadata: dict[str, Any] = {}
    if fm.get("title"):
        metadata["title"] = str(fm["title"])
    if fm.get("abstract"):
        metadata["description"] = str(fm["abstract"])
    if fm.get("author"):
        author = fm["author"]
        metadata["author"] = (
            ", ".join(str(a) for a in author)
            if isinstance(author, list)
            else str(author)
        )
    date_value = fm.get("date") or fm.get("year")
    if date_value:
        published = _to_iso_date(date_value)
        if published:
            metadata["published_date"] = published
    site_name = fm.get("journal") or fm.get("booktitle")
    if site_name:
        metadata["site_name"] = str(site_name)
    if fm.get("type"):
        metadata["type"] = str(fm["type"])

    return UrlCard(
        content=UrlContent(url=url, metadata=UrlMetadata(**metadata)),
        url=url,
    )


def card_projection(card: UrlCard | NoteCard) -> dict[str, Any]:
    """The hashed part of a card: type, content and url, no timestamps."""
    record = card_to_record(card)
    return {key: record[key] for key in ("type", "content", "url") if key in record}


def compute_card_hash(card: UrlCard | NoteCard) -> str:
    return card_hash(card_projection(card))


def compute_object_hash(obj: VaultObject) -> str | None:
    """Content hash of the card *obj* would push, or ``None`` without a URL."""
    card = object_to_card(obj)
    if card is None:
        return None
    return compute_card_hash(card)


# ---------------------------------------------------------------------------
# Card -> Object
# ---------------------------------------------------------------------------

_suffix_lock = threading.Lock()
_last_suffix_ms = 0


def _base36(number: int) -> str:
    if number == 0:
        return "0"
    digits = []
    while number:
        number, rem = divmod(number, 36)
        digits.append(_BASE36[rem])
    return "".join(reversed(digits))


def time_suffix() -> str:
    """Base-36 millisecond timestamp, strictly increasing within a process."""
    global _last_suffix_ms
    with _suffix_lock:
        now_ms = time.time_ns() // 1_000_000
        if now_ms <= _last_suffix_ms:
            now_ms = _last_suffix_ms + 1
        _last_suffix_ms = now_ms
    return _base36(now_ms)


def slugify(text: str, max_length: int = SLUG_LENGTH) -> str:
    """Lowercase, collapse non-alphanumerics to ``-``, trim, truncate."""
    slug = _SLUG_RE.sub("-", text.lower()).strip("-")
    return slug[:max_length].strip("-")


def _host_slug(url: str) -> str:
    host = urlparse(url).hostname or ""
    return host.replace(".", "-")


def _parse_published(value: str | None) -> datetime | None:
    if not value:
        return None
    try:
        parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError:
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed.astimezone(timezone.utc)


def card_to_frontmatter(
    card: UrlCard | NoteCard, uri: str
) -> tuple[dict[str, Any], str]:
    """Frontmatter and body for a new local object created from *card*.

    URL cards become ``bibtex_entry`` records with a synthesized
    ``citation_key`` (``<host>-<year>-<time suffix>``).  Note cards become
    ``note`` records; the first ``# `` heading becomes the title and is
    removed from the body.

    Every record is stamped ``visibility: private``, ``semble_uri`` and
    ``semble_synced_at``.
    """
    imported_at = utc_now()
    frontmatter: dict[str, Any] = {
        "visibility": "private",
        "semble_uri": uri,
        "semble_synced_at": imported_at,
    }

    if isinstance(card, UrlCard):
        url = card.content.url
        metadata = card.content.metadata
        frontmatter["type"] = "bibtex_entry"
        frontmatter["url"] = url
        if metadata.title:
            frontmatter["title"] = metadata.title
        if metadata.description:
            frontmatter["abstract"] = metadata.description
        if metadata.author:
            frontmatter["author"] = metadata.author
        published = _parse_published(metadata.published_date)
        if published is not None:
            frontmatter["date"] = published.strftime("%Y-%m-%d")
            frontmatter["year"] = published.year
        if metadata.site_name:
            frontmatter["journal"] = metadata.site_name

        year = published.year if published else datetime.now(timezone.utc).year
        host = _host_slug(url) or "reference"
        frontmatter["citation_key"] = f"{host}-{year}-{time_suffix()}"

        body = f"Imported from Semble on {imported_at}.\n\nOriginal URL: {url}"
        return frontmatter, body

    text = card.content.text
    frontmatter["type"] = "note"
    match = _HEADING_RE.search(text)
    if match:
        frontmatter["title"] = match.group(1).strip()
    frontmatter["note_id"] = f"semble-note-{time_suffix()}"
    frontmatter["id"] = frontmatter["note_id"]

    body = text
    if match:
        body = (text[: match.start()] + text[match.end():]).strip()
    if not body.strip():
        body = f"Imported from Semble on {imported_at}."
    return frontmatter, body


def card_to_filename(card: UrlCard | NoteCard) -> str:
    """File name for a pulled card.

    URL cards: slugified title, else the URL host, else ``reference``.
    Note cards: slugified heading, else the first text line, else ``note``,
    always followed by a time suffix.
    """
    if isinstance(card, UrlCard):
        slug = ""
        if card.content.metadata.title:
            slug = slugify(card.content.metadata.title)
        if not slug:
            slug = _host_slug(card.content.url)
        return f"{slug or 'reference'}.md"

    text = card.content.text
    match = _HEADING_RE.search(text)
    if match:
        slug = slugify(match.group(1))
    else:
        first_line = text.strip().splitlines()[0] if text.strip() else ""
        slug = slugify(first_line)
    return f"{slug or 'note'}-{time_suffix()}.md"
