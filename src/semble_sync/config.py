"""Account configuration for the Semble remote repository.

Reads ATProto connection settings from explicit overrides, environment
variables, .env files, and YAML config file fallbacks.

Precedence (highest to lowest):
    Overrides > Environment variables > .env file > YAML config > Built-in defaults

Environment variables:
    SEMBLE_PDS: ATProto PDS URL (optional, default: https://bsky.social)
    SEMBLE_IDENTIFIER: Handle or DID to log in as (required)
    SEMBLE_APP_PASSWORD: App password (required; ATPROTO_APP_PASSWORD is
        accepted as a fallback)
    SEMBLE_INSECURE: Skip SSL verification (optional, default: false)
    SEMBLE_DEBUG: Enable debug logging (optional, default: false)
"""

import logging
import os
from dataclasses import dataclass
from urllib.parse import urlparse

from .errors import ConfigurationError

logger = logging.getLogger(__name__)

DEFAULT_PDS_URL = "https://bsky.social"


@dataclass
class Config:
    identifier: str
    password: str
    pds_url: str = DEFAULT_PDS_URL
    insecure: bool = False
    debug: bool = False


def env_password() -> str | None:
    """Return the app password from the environment, if any."""
    return os.getenv("SEMBLE_APP_PASSWORD") or os.getenv(
        "ATPROTO_APP_PASSWORD"
    )


def config_problems(config: Config) -> list[str]:
    """List every missing or malformed setting in *config*.

    Returns an empty list when the configuration is usable.
    """
    problems: list[str] = []

    if not config.identifier or not config.identifier.strip():
        problems.append("identifier is required (ATProto handle or DID)")

    if not (config.password and config.password.strip()) and not env_password():
        problems.append(
            "password or SEMBLE_APP_PASSWORD/ATPROTO_APP_PASSWORD env required"
        )

    pds = (config.pds_url or "").strip()
    if not pds.startswith(("http://", "https://")):
        problems.append(
            f"Invalid PDS URL '{pds}': must start with http:// or https://"
        )
    elif not urlparse(pds).hostname:
        problems.append(
            f"Invalid PDS URL '{pds}': URL must include a hostname"
        )

    return problems


def validate_config(config: Config) -> None:
    """Validate configuration values and raise if unusable.

    Normalises the PDS URL (whitespace and trailing slash) in place.

    Raises:
        ConfigurationError: Listing every problem found.
    """
    problems = config_problems(config)
    if problems:
        raise ConfigurationError(
            "Invalid Semble configuration: " + "; ".join(problems)
        )

    config.pds_url = config.pds_url.strip().removesuffix("/")
    config.identifier = config.identifier.strip()

    if config.insecure:
        logger.warning(
            "WARNING: SSL verification disabled (insecure=True). Use only for development."
        )


def _get_bool_env(key: str) -> bool | None:
    """Return True/False from env var, or None if unset."""
    val = os.getenv(key)
    if val is None:
        return None
    return val.lower() in ("true", "1", "yes", "on")


def load_config(
    identifier: str | None = None,
    password: str | None = None,
    pds_url: str | None = None,
    insecure: bool = False,
    debug: bool = False,
    yaml_fallbacks: dict | None = None,
) -> Config:
    """Load account configuration with unified precedence.

    Resolution order for each field (highest to lowest):
        override arg > env var / .env > yaml_fallbacks > built-in default

    The caller is responsible for calling ``load_dotenv()`` before this
    function so that .env values are available via ``os.getenv()``.

    Args:
        identifier: Override handle or DID.
        password: Override app password.
        pds_url: Override PDS URL.
        insecure: Skip SSL verification.
        debug: Enable debug logging.
        yaml_fallbacks: Dict of values from the YAML ``semble`` section.

    Returns:
        Validated Config instance.

    Raises:
        ConfigurationError: If the identifier or password is missing after
            checking all sources.
    """
    fb = yaml_fallbacks or {}

    final_identifier = (
        identifier or os.getenv("SEMBLE_IDENTIFIER") or fb.get("identifier")
    )
    if not final_identifier:
        raise ConfigurationError(
            "Semble identifier not found. Set SEMBLE_IDENTIFIER environment "
            "variable or add 'identifier' to the semble section of config.yml."
        )

    final_password = password or env_password() or fb.get("password")
    if not final_password:
        raise ConfigurationError(
            "Semble app password not found. Set SEMBLE_APP_PASSWORD (or "
            "ATPROTO_APP_PASSWORD) or add 'password' to config.yml."
        )

    final_pds = (
        pds_url or os.getenv("SEMBLE_PDS") or fb.get("pds") or DEFAULT_PDS_URL
    )

    if insecure:
        final_insecure = True
    else:
        env_insecure = _get_bool_env("SEMBLE_INSECURE")
        if env_insecure is not None:
            final_insecure = env_insecure
        else:
            final_insecure = bool(fb.get("insecure", False))

    if debug:
        final_debug = True
    else:
        env_debug = _get_bool_env("SEMBLE_DEBUG")
        if env_debug is not None:
            final_debug = env_debug
        else:
            final_debug = bool(fb.get("debug", False))

    config = Config(
        identifier=final_identifier,
        password=final_password,
        pds_url=final_pds,
        insecure=final_insecure,
        debug=final_debug,
    )

    validate_config(config)

    return config
