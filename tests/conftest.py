"""Shared pytest fixtures for semble-sync tests."""

from __future__ import annotations

import itertools
from pathlib import Path
from typing import Any

import pytest
from dotenv import load_dotenv

from semble_sync.config import Config
from semble_sync.core.client import (
    LEXICON_CARD,
    LEXICON_COLLECTION,
    LEXICON_COLLECTION_LINK,
)
from semble_sync.sync.context import SyncContext
from semble_sync.sync.models import SyncOptions
from semble_sync.sync.state import SyncStateStore
from semble_sync.validators import parse_at_uri
from semble_sync.vault import VaultObject

load_dotenv()

MUTATING_CALLS = {
    "create_card",
    "update_card",
    "delete_record",
    "create_collection",
    "link_card_to_collection",
    "unlink_card_from_collection",
}


def pytest_addoption(parser):
    """Add custom CLI options for test filtering."""
    parser.addoption(
        "--run-live",
        action="store_true",
        default=False,
        help="Run tests that require a live Semble account",
    )


def pytest_configure(config):
    """Register custom markers."""
    config.addinivalue_line(
        "markers", "live: mark test as requiring a live Semble account"
    )


def pytest_collection_modifyitems(config, items):
    """Skip live tests unless --run-live is passed."""
    if config.getoption("--run-live"):
        return
    skip_live = pytest.mark.skip(reason="need --run-live option to run")
    for item in items:
        if "live" in item.keywords:
            item.add_marker(skip_live)


# ---------------------------------------------------------------------------
# In-memory remote repository
# ---------------------------------------------------------------------------


class FakeSembleClient:
    """In-memory stand-in for ``SembleClient``.

    Records every call in ``calls`` as ``(method, args)``.  Put an
    exception in ``failures[method]`` to make that method raise.
    """

    did = "did:plc:tester"
    handle = "tester.bsky.social"

    def __init__(self) -> None:
        self.cards: dict[str, dict[str, Any]] = {}
        self.collections: dict[str, dict[str, Any]] = {}
        self.links: dict[str, dict[str, Any]] = {}
        self.calls: list[tuple[str, tuple]] = []
        self.failures: dict[str, Exception] = {}
        self.delete_result = True
        self._ids = itertools.count(1)

    # -- helpers ----------------------------------------------------------

    def _record(self, method: str, *args) -> None:
        self.calls.append((method, args))
        if method in self.failures:
            raise self.failures[method]

    def _new_uri(self, lexicon: str) -> str:
        return f"at://{self.did}/{lexicon}/rk{next(self._ids):04d}"

    def _new_cid(self) -> str:
        return f"bafy{next(self._ids):06d}"

    def calls_to(self, method: str) -> list[tuple]:
        return [args for name, args in self.calls if name == method]

    def mutation_calls(self) -> list[tuple[str, tuple]]:
        return [call for call in self.calls if call[0] in MUTATING_CALLS]

    def add_card(self, value: dict[str, Any]) -> str:
        """Seed a remote card without recording a call."""
        uri = self._new_uri(LEXICON_CARD)
        self.cards[uri] = {"cid": self._new_cid(), "value": value}
        return uri

    def add_collection(self, name: str) -> str:
        """Seed a remote collection without recording a call."""
        uri = self._new_uri(LEXICON_COLLECTION)
        self.collections[uri] = {
            "cid": self._new_cid(),
            "value": {"name": name, "accessType": "OPEN"},
        }
        return uri

    def add_link(self, card_uri: str, collection_uri: str) -> str:
        """Seed a collection link without recording a call."""
        uri = self._new_uri(LEXICON_COLLECTION_LINK)
        self.links[uri] = {
            "cid": self._new_cid(),
            "value": {
                "card": {"uri": card_uri, "cid": "x"},
                "collection": {"uri": collection_uri, "cid": "y"},
            },
        }
        return uri

    def edit_remotely(self, uri: str) -> str:
        """Simulate an external edit: the card gets a new CID."""
        self.cards[uri]["cid"] = self._new_cid()
        return self.cards[uri]["cid"]

    def linked_collections(self, card_uri: str) -> set[str]:
        return {
            link["value"]["collection"]["uri"]
            for link in self.links.values()
            if link["value"]["card"]["uri"] == card_uri
        }

    # -- remote repository API ---------------------------------------------

    def login(self) -> dict[str, Any]:
        self._record("login")
        return {"did": self.did, "handle": self.handle, "accessJwt": "jwt"}

    def find_collection_by_name(self, name: str) -> dict[str, str] | None:
        self._record("find_collection_by_name", name)
        for uri, coll in self.collections.items():
            if coll["value"]["name"] == name:
                return {"uri": uri, "cid": coll["cid"]}
        return None

    def create_collection(
        self, name: str, description: str | None = None
    ) -> dict[str, str]:
        self._record("create_collection", name, description)
        uri = self._new_uri(LEXICON_COLLECTION)
        cid = self._new_cid()
        self.collections[uri] = {
            "cid": cid,
            "value": {"name": name, "description": description},
        }
        return {"uri": uri, "cid": cid}

    def list_collections(self) -> list[dict[str, Any]]:
        self._record("list_collections")
        return [
            {"uri": uri, "cid": c["cid"], "value": c["value"]}
            for uri, c in self.collections.items()
        ]

    def create_card(self, card: dict[str, Any]) -> dict[str, str]:
        self._record("create_card", card)
        uri = self._new_uri(LEXICON_CARD)
        cid = self._new_cid()
        self.cards[uri] = {"cid": cid, "value": card}
        return {"uri": uri, "cid": cid}

    def update_card(self, uri: str, card: dict[str, Any]) -> dict[str, str]:
        self._record("update_card", uri, card)
        cid = self._new_cid()
        self.cards[uri] = {"cid": cid, "value": card}
        return {"uri": uri, "cid": cid}

    def get_card(self, uri: str) -> dict[str, Any] | None:
        self._record("get_card", uri)
        card = self.cards.get(uri)
        if card is None:
            return None
        return {"uri": uri, "cid": card["cid"], "value": card["value"]}

    def get_all_cards(self) -> list[dict[str, Any]]:
        self._record("get_all_cards")
        return [
            {"uri": uri, "cid": c["cid"], "value": c["value"]}
            for uri, c in self.cards.items()
        ]

    def delete_record(self, collection: str, rkey: str) -> bool:
        self._record("delete_record", collection, rkey)
        if not self.delete_result:
            return False
        store = self.cards if collection == LEXICON_CARD else self.links
        for uri in list(store):
            if parse_at_uri(uri).rkey == rkey:
                del store[uri]
        return True

    def link_card_to_collection(
        self,
        card_uri: str,
        card_cid: str,
        collection_uri: str,
        collection_cid: str,
    ) -> dict[str, str]:
        self._record(
            "link_card_to_collection",
            card_uri,
            card_cid,
            collection_uri,
            collection_cid,
        )
        uri = self._new_uri(LEXICON_COLLECTION_LINK)
        cid = self._new_cid()
        self.links[uri] = {
            "cid": cid,
            "value": {
                "card": {"uri": card_uri, "cid": card_cid},
                "collection": {"uri": collection_uri, "cid": collection_cid},
            },
        }
        return {"uri": uri, "cid": cid}

    def unlink_card_from_collection(
        self,
        card_uri: str,
        collection_uri: str,
        link_uri: str | None = None,
    ) -> None:
        self._record(
            "unlink_card_from_collection", card_uri, collection_uri, link_uri
        )
        for uri in list(self.links):
            value = self.links[uri]["value"]
            if (
                value["card"]["uri"] == card_uri
                and value["collection"]["uri"] == collection_uri
            ):
                del self.links[uri]

    def get_all_collection_links(self) -> list[dict[str, Any]]:
        self._record("get_all_collection_links")
        return [
            {"uri": uri, "cid": link["cid"], "value": link["value"]}
            for uri, link in self.links.items()
        ]


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def mock_config():
    """Create an account Config for testing."""
    return Config(
        identifier="tester.bsky.social",
        password="app-password",
        pds_url="https://pds.example.com",
    )


@pytest.fixture
def fake_client():
    return FakeSembleClient()


@pytest.fixture
def make_object():
    """Factory fixture for vault objects.

    Usage: ``make_object("paper1", url="https://x.org/p", title="T")``.
    """

    def _make(
        obj_id: str,
        project: str = "refs",
        type: str = "bibtex_entry",
        visibility: str = "public",
        body: str = "",
        **frontmatter: Any,
    ) -> VaultObject:
        return VaultObject(
            id=obj_id,
            type=type,
            project=project,
            frontmatter=frontmatter,
            body=body,
            visibility=visibility,
            file_path=f"/vault/{project}/{obj_id}.md",
            relative_path=f"{project}/{obj_id}.md",
            title=frontmatter.get("title"),
        )

    return _make


@pytest.fixture
def make_ctx(fake_client, tmp_path: Path):
    """Factory fixture for a ``SyncContext`` over ``fake_client``."""

    def _make(
        options: SyncOptions | None = None,
        collections: dict[str, dict[str, str]] | None = None,
        project: str = "refs",
        state: dict | None = None,
    ) -> SyncContext:
        store = SyncStateStore(tmp_path / "state")
        return SyncContext(
            client=fake_client,
            store=store,
            state=state if state is not None else store.load(project),
            project=project,
            collection_name=project,
            options=options or SyncOptions(),
            content_root=tmp_path / "content",
            collections=collections or {},
        )

    return _make
