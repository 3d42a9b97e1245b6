"""
Input validation for AT-URIs, record keys and collection names.

Validation helpers return ``(is_valid, error_message)`` tuples so callers
can decide whether to raise or report.  ``parse_at_uri`` raises
``ValueError`` because a malformed URI in sync state is never recoverable.
"""

import re
from typing import NamedTuple

_RKEY_PATTERN = re.compile(r"^[A-Za-z0-9._:~-]{1,512}$")


class AtUri(NamedTuple):
    """Components of an ``at://`` record URI."""

    did: str
    collection: str
    rkey: str


def format_validation_error(field_name: str, reason: str) -> str:
    """
    Generate consistent error message for validation failures.

    Args:
        field_name: Human-readable field name (e.g., "Collection name")
        reason: Description of validation failure (e.g., "cannot be empty")

    Returns:
        Formatted error message string
    """
    return f"{field_name} {reason}"


def parse_at_uri(uri: str) -> AtUri:
    """
    Split an AT-URI into repository DID, collection NSID and record key.

    Example:
        ``at://did:plc:abc/network.cosmik.card/3kq2x`` ->
        ``AtUri("did:plc:abc", "network.cosmik.card", "3kq2x")``

    Raises:
        ValueError: If the URI does not have exactly three path parts.
    """
    if not uri or not uri.startswith("at://"):
        raise ValueError(f"Invalid AT-URI '{uri}': must start with at://")

    parts = uri.removeprefix("at://").split("/")
    if len(parts) != 3 or not all(parts):
        raise ValueError(
            f"Invalid AT-URI '{uri}': expected at://<did>/<collection>/<rkey>"
        )
    return AtUri(parts[0], parts[1], parts[2])


def validate_record_key(rkey: str) -> tuple[bool, str]:
    """
    Validate an ATProto record key.

    Validation rules:
        - Cannot be empty
        - Cannot be '.' or '..'
        - Only A-Z, a-z, 0-9 and '.', '_', ':', '~', '-' (max 512 chars)
    """
    if not rkey:
        return (False, format_validation_error("Record key", "cannot be empty"))

    if rkey in (".", ".."):
        return (
            False,
            format_validation_error("Record key", "cannot be '.' or '..'"),
        )

    if not _RKEY_PATTERN.match(rkey):
        return (
            False,
            format_validation_error(
                "Record key", "contains unsupported characters"
            ),
        )

    return (True, "")


def validate_collection_name(name: str) -> tuple[bool, str]:
    """
    Validate a collection name before it is created remotely.

    Validation rules:
        - Cannot be empty or whitespace-only
        - Cannot have surrounding whitespace
        - Tag part of ``project:tag`` names cannot be empty
    """
    if not name or not name.strip():
        return (
            False,
            format_validation_error("Collection name", "cannot be empty"),
        )

    if name != name.strip():
        return (
            False,
            format_validation_error(
                "Collection name", "cannot have surrounding whitespace"
            ),
        )

    if name.endswith(":"):
        return (
            False,
            format_validation_error(
                "Collection name", "cannot have an empty tag part"
            ),
        )

    return (True, "")
