import logging
import random
import time
from datetime import datetime, timezone
from typing import Any

import requests

from ..config import Config
from ..errors import AuthenticationError, ConfigurationError, RemoteError
from ..validators import parse_at_uri, validate_record_key

logger = logging.getLogger(__name__)

LEXICON_CARD = "network.cosmik.card"
LEXICON_COLLECTION = "network.cosmik.collection"
LEXICON_COLLECTION_LINK = "network.cosmik.collectionLink"

PAGE_SIZE = 100
_TID_ALPHABET = "234567abcdefghijklmnopqrstuvwxyz"


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat().replace("+00:00", "Z")


class SembleClient:
    def __init__(self, config: Config):
        self.config = config
        self._session: requests.Session | None = None
        self._auth: dict[str, Any] | None = None

    @property
    def pds(self) -> str:
        return self.config.pds_url.rstrip("/")

    @property
    def did(self) -> str | None:
        return self._auth["did"] if self._auth else None

    @property
    def handle(self) -> str | None:
        return self._auth["handle"] if self._auth else None

    @property
    def session(self) -> requests.Session:
        if self._session is None:
            session = requests.Session()
            session.verify = not self.config.insecure
            self._session = session
        return self._session

    def _xrpc_url(self, method: str) -> str:
        return f"{self.pds}/xrpc/{method}"

    # ------------------------------------------------------------------
    # Authentication
    # ------------------------------------------------------------------

    def login(self) -> dict[str, Any]:
        """
        Create an ATProto session, reusing the cached one if present.

        Returns:
            Session dict with keys: did, handle, accessJwt, refreshJwt

        Raises:
            ConfigurationError: If no app password is configured
            AuthenticationError: If the PDS rejects the credentials
        """
        if self._auth is not None:
            return self._auth

        if not self.config.password:
            raise ConfigurationError(
                "No ATProto app password available. Set SEMBLE_APP_PASSWORD or ATPROTO_APP_PASSWORD."
            )

        response = self.session.post(
            self._xrpc_url("com.atproto.server.createSession"),
            json={
                "identifier": self.config.identifier,
                "password": self.config.password,
            },
            timeout=(10, 60),
        )
        if not response.ok:
            raise AuthenticationError(
                f"ATProto login failed: {response.status_code} {response.text}"
            )

        self._auth = response.json()
        logger.debug("Logged in as %s (%s)", self.handle, self.did)
        return self._auth

    def _headers(self) -> dict[str, str]:
        auth = self.login()
        return {"Authorization": f"Bearer {auth['accessJwt']}"}

    def _post(self, method: str, body: dict[str, Any]) -> requests.Response:
        return self.session.post(
            self._xrpc_url(method),
            json=body,
            headers=self._headers(),
            timeout=(10, 60),
        )

    def _get(self, method: str, params: dict[str, Any]) -> requests.Response:
        return self.session.get(
            self._xrpc_url(method),
            params=params,
            headers=self._headers(),
            timeout=(10, 60),
        )

    @staticmethod
    def _raise_for_error(response: requests.Response, action: str) -> None:
        if not response.ok:
            raise RemoteError(
                f"Failed to {action}: {response.status_code} {response.text}",
                status_code=response.status_code,
            )

    @staticmethod
    def _is_not_found(response: requests.Response) -> bool:
        if response.status_code == 404:
            return True
        if response.status_code == 400:
            try:
                return response.json().get("error") == "RecordNotFound"
            except ValueError:
                return False
        return False

    # ------------------------------------------------------------------
    # Generic record operations
    # ------------------------------------------------------------------

    def create_record(
        self, collection: str, record: dict[str, Any], rkey: str | None = None
    ) -> dict[str, str]:
        """
        Create a record in the user's repository.

        Returns:
            Dict with keys: uri, cid

        Raises:
            RemoteError: If the PDS rejects the record
        """
        body: dict[str, Any] = {
            "repo": self.login()["did"],
            "collection": collection,
            "record": record,
        }
        if rkey:
            valid, reason = validate_record_key(rkey)
            if not valid:
                raise ValueError(reason)
            body["rkey"] = rkey

        response = self._post("com.atproto.repo.createRecord", body)
        self._raise_for_error(response, "create record")
        data = response.json()
        return {"uri": data["uri"], "cid": data["cid"]}

    def put_record(
        self,
        collection: str,
        rkey: str,
        record: dict[str, Any],
        swap_record: str | None = None,
    ) -> dict[str, str]:
        """
        Create or replace a record.

        Args:
            swap_record: CID the current record must have (compare-and-swap)

        Returns:
            Dict with keys: uri, cid
        """
        body: dict[str, Any] = {
            "repo": self.login()["did"],
            "collection": collection,
            "rkey": rkey,
            "record": record,
        }
        if swap_record:
            body["swapRecord"] = swap_record

        response = self._post("com.atproto.repo.putRecord", body)
        self._raise_for_error(response, "update record")
        data = response.json()
        return {"uri": data["uri"], "cid": data["cid"]}

    def get_record_by_uri(self, uri: str) -> dict[str, Any] | None:
        """
        Fetch a record by AT-URI.

        Returns:
            Dict with keys: uri, cid, value -- or None if the record is gone
        """
        parsed = parse_at_uri(uri)
        response = self._get(
            "com.atproto.repo.getRecord",
            {
                "repo": parsed.did,
                "collection": parsed.collection,
                "rkey": parsed.rkey,
            },
        )
        if self._is_not_found(response):
            return None
        self._raise_for_error(response, "get record")
        data = response.json()
        return {"uri": data.get("uri", uri), "cid": data["cid"], "value": data["value"]}

    def list_records(
        self,
        collection: str,
        limit: int = PAGE_SIZE,
        cursor: str | None = None,
    ) -> dict[str, Any]:
        """
        List one page of records in a collection.

        Returns:
            Dict with keys: records (list of {uri, cid, value}), cursor
        """
        params: dict[str, Any] = {
            "repo": self.login()["did"],
            "collection": collection,
            "limit": limit,
        }
        if cursor:
            params["cursor"] = cursor

        response = self._get("com.atproto.repo.listRecords", params)
        self._raise_for_error(response, "list records")
        return response.json()

    def list_all_records(self, collection: str) -> list[dict[str, Any]]:
        """List every record in a collection, following cursors."""
        records: list[dict[str, Any]] = []
        cursor: str | None = None
        while True:
            page = self.list_records(collection, PAGE_SIZE, cursor)
            records.extend(page.get("records", []))
            cursor = page.get("cursor")
            if not cursor or not page.get("records"):
                break
        return records

    def delete_record(self, collection: str, rkey: str) -> bool:
        """
        Delete a record from the user's repository.

        Returns:
            True if the PDS accepted the deletion
        """
        response = self._post(
            "com.atproto.repo.deleteRecord",
            {
                "repo": self.login()["did"],
                "collection": collection,
                "rkey": rkey,
            },
        )
        if not response.ok:
            logger.warning(
                "Delete of %s/%s failed: %s", collection, rkey, response.status_code
            )
        return response.ok

    # ------------------------------------------------------------------
    # Cards
    # ------------------------------------------------------------------

    def create_card(
        self, card: dict[str, Any], rkey: str | None = None
    ) -> dict[str, str]:
        """
        Create a card record.

        Args:
            card: Card content as produced by ``Card.to_record()``
        """
        record = {
            **card,
            "$type": LEXICON_CARD,
            "createdAt": card.get("createdAt") or _now_iso(),
        }
        return self.create_record(LEXICON_CARD, record, rkey or self.generate_tid())

    def update_card(
        self, uri: str, card: dict[str, Any], swap_cid: str | None = None
    ) -> dict[str, str]:
        """Replace the card at *uri*; the remote assigns a new CID."""
        rkey = parse_at_uri(uri).rkey
        record = {
            **card,
            "$type": LEXICON_CARD,
            "createdAt": card.get("createdAt") or _now_iso(),
        }
        return self.put_record(LEXICON_CARD, rkey, record, swap_cid)

    def get_card(self, uri: str) -> dict[str, Any] | None:
        """Fetch a card; returns None if it no longer exists."""
        return self.get_record_by_uri(uri)

    def get_all_cards(self) -> list[dict[str, Any]]:
        """Return every card as ``{uri, cid, value}`` dicts."""
        return self.list_all_records(LEXICON_CARD)

    # ------------------------------------------------------------------
    # Collections
    # ------------------------------------------------------------------

    def create_collection(
        self, name: str, description: str | None = None, access_type: str = "OPEN"
    ) -> dict[str, str]:
        record: dict[str, Any] = {
            "$type": LEXICON_COLLECTION,
            "name": name,
            "accessType": access_type,
            "createdAt": _now_iso(),
        }
        if description:
            record["description"] = description
        return self.create_record(LEXICON_COLLECTION, record, self.generate_tid())

    def list_collections(self) -> list[dict[str, Any]]:
        """Return every collection as ``{uri, cid, value}`` dicts."""
        return self.list_all_records(LEXICON_COLLECTION)

    def find_collection_by_name(self, name: str) -> dict[str, str] | None:
        for record in self.list_collections():
            if record["value"].get("name") == name:
                return {"uri": record["uri"], "cid": record["cid"]}
        return None

    # ------------------------------------------------------------------
    # Collection links
    # ------------------------------------------------------------------

    def link_card_to_collection(
        self,
        card_uri: str,
        card_cid: str,
        collection_uri: str,
        collection_cid: str,
    ) -> dict[str, str]:
        now = _now_iso()
        record: dict[str, Any] = {
            "$type": LEXICON_COLLECTION_LINK,
            "card": {"uri": card_uri, "cid": card_cid},
            "collection": {"uri": collection_uri, "cid": collection_cid},
            "addedAt": now,
            "createdAt": now,
        }
        if self.did:
            record["addedBy"] = self.did
        return self.create_record(
            LEXICON_COLLECTION_LINK, record, self.generate_tid()
        )

    def get_all_collection_links(self) -> list[dict[str, Any]]:
        """Return every collection link as ``{uri, cid, value}`` dicts."""
        return self.list_all_records(LEXICON_COLLECTION_LINK)

    def find_collection_link(
        self, card_uri: str, collection_uri: str
    ) -> str | None:
        """Return the URI of the link record joining a card and a collection."""
        for link in self.get_all_collection_links():
            value = link["value"]
            if (
                value["card"]["uri"] == card_uri
                and value["collection"]["uri"] == collection_uri
            ):
                return link["uri"]
        return None

    def unlink_card_from_collection(
        self,
        card_uri: str,
        collection_uri: str,
        link_uri: str | None = None,
    ) -> None:
        """
        Remove a card from a collection by deleting its link record.

        Args:
            link_uri: Known link record URI; looked up when omitted

        Raises:
            RemoteError: If the link record could not be deleted
        """
        if link_uri is None:
            link_uri = self.find_collection_link(card_uri, collection_uri)
            if link_uri is None:
                return

        rkey = parse_at_uri(link_uri).rkey
        if not self.delete_record(LEXICON_COLLECTION_LINK, rkey):
            raise RemoteError(
                f"Failed to unlink {card_uri} from {collection_uri}"
            )

    # ------------------------------------------------------------------
    # Utilities
    # ------------------------------------------------------------------

    @staticmethod
    def generate_tid() -> str:
        """
        Generate a timestamp identifier (TID) record key.

        53 bits of microsecond timestamp followed by a 10-bit clock id,
        encoded as 13 sortable base32 characters.
        """
        micros = time.time_ns() // 1000
        value = (micros << 10) | random.randrange(1024)
        chars = []
        for _ in range(13):
            chars.append(_TID_ALPHABET[value & 31])
            value >>= 5
        return "".join(reversed(chars))

    def card_web_url(self, rkey: str) -> str:
        """Public Semble URL for a card."""
        owner = self.handle or self.config.identifier
        return f"https://semble.so/card/{owner}/{rkey}"
