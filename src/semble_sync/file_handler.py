"""File handler module: encoding-aware read/write and markdown frontmatter.

Vault objects are markdown files with a YAML frontmatter block delimited by
``---`` lines.  Reading detects the file encoding; writing always produces
UTF-8 and creates parent directories.
"""

import logging
from pathlib import Path
from typing import Any

import yaml
from charset_normalizer import from_bytes

logger = logging.getLogger(__name__)

_DELIMITER = "---"

# =============================================================================
# File Read/Write
# =============================================================================


def read_file_with_encoding(path: Path) -> tuple[str, str]:
    """Read a file with automatic encoding detection.

    Reads raw bytes first, then uses charset-normalizer to detect encoding.
    Defaults to UTF-8 for empty files or when detection fails.

    Returns:
        Tuple of (content_string, detected_encoding).
    """
    raw = path.read_bytes()
    if not raw:
        return ("", "utf-8")

    result = from_bytes(raw).best()
    if result is None:
        encoding = "utf-8"
        content = raw.decode(encoding, errors="replace")
    else:
        encoding = result.encoding
        # ascii is a strict subset of utf-8
        if encoding == "ascii":
            encoding = "utf-8"
        content = str(result)
    return (content.lstrip("\ufeff"), encoding)


def write_file(path: Path, content: str, encoding: str = "utf-8") -> int:
    """Write content to a file, creating parent directories as needed.

    Returns:
        Number of bytes written.
    """
    path.parent.mkdir(parents=True, exist_ok=True)
    encoded = content.encode(encoding)
    path.write_bytes(encoded)
    return len(encoded)


# =============================================================================
# Markdown frontmatter
# =============================================================================


def parse_markdown(content: str) -> tuple[dict[str, Any], str]:
    """Split markdown *content* into ``(frontmatter, body)``.

    Content without a leading ``---`` block has empty frontmatter.  A
    frontmatter block that is not a YAML mapping is treated as empty and
    logged.  The body is stripped of surrounding whitespace.
    """
    text = content.replace("\r\n", "\n")
    if not text.startswith(_DELIMITER + "\n"):
        return {}, text.strip()

    end = text.find("\n" + _DELIMITER, len(_DELIMITER))
    if end == -1:
        return {}, text.strip()

    raw_yaml = text[len(_DELIMITER) + 1 : end]
    body = text[end + len(_DELIMITER) + 1 :]

    try:
        data = yaml.safe_load(raw_yaml) or {}
    except yaml.YAMLError as exc:
        logger.warning("Invalid frontmatter YAML: %s", exc)
        data = {}

    if not isinstance(data, dict):
        logger.warning(
            "Frontmatter is not a mapping (%s), ignoring", type(data).__name__
        )
        data = {}

    return data, body.strip()


def stringify_markdown(frontmatter: dict[str, Any], body: str) -> str:
    """Render frontmatter and body back into a markdown document."""
    dumped = yaml.safe_dump(
        frontmatter,
        default_flow_style=False,
        allow_unicode=True,
        sort_keys=False,
    )
    return f"{_DELIMITER}\n{dumped}{_DELIMITER}\n{body.strip()}\n"


def write_markdown(
    path: Path, frontmatter: dict[str, Any], body: str
) -> int:
    """Write a markdown file with frontmatter to *path*.

    Returns:
        Number of bytes written.
    """
    return write_file(path, stringify_markdown(frontmatter, body))
