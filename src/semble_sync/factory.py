"""Entry points that wire configuration, logging and the sync engine.

Startup follows one order:

1. Load ``.env`` (so values are visible to env lookups and YAML
   ``${VAR}`` interpolation).
2. Load the YAML config files, if any, as fallback values.
3. Configure logging from the ``logging`` section.
4. Resolve the account config: overrides > env > .env > YAML > defaults.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Any

from dotenv import load_dotenv

from .config import Config, load_config
from .config_loader import discover_config_files, load_hierarchical_config
from .config_schema import ProjectSyncConfig, UnifiedConfig, build_config
from .core.client import SembleClient
from .errors import ConfigurationError
from .logger import setup_logging
from .sync import SyncEngine, SyncOptions, SyncResult
from .vault import load_vault_objects

logger = logging.getLogger(__name__)


def bootstrap(
    overrides: dict[str, Any] | None = None,
    configure_logging: bool = True,
) -> tuple[Config, UnifiedConfig]:
    """Load every configuration source.

    Args:
        overrides: Explicit values (identifier, password, pds, insecure,
            debug) that beat every other source.
        configure_logging: Call ``setup_logging()`` from the ``logging``
            section.

    Returns:
        Tuple of (validated account config, unified config).

    Raises:
        ConfigurationError: If the identifier or password is missing.
    """
    load_dotenv()

    unified = UnifiedConfig()
    config_files = discover_config_files()
    if config_files:
        unified = build_config(load_hierarchical_config())

    ov = overrides or {}
    if configure_logging:
        setup_logging(
            debug=bool(ov.get("debug") or unified.semble.debug),
            log_file=unified.logging.file,
            level=unified.logging.level,
        )
    if config_files:
        logger.info(
            "Configuration loaded from: %s",
            ", ".join(str(p) for p in config_files),
        )

    yaml_fallbacks = {
        k: v for k, v in unified.semble.model_dump().items() if v is not None
    }
    config = load_config(
        identifier=ov.get("identifier"),
        password=ov.get("password"),
        pds_url=ov.get("pds"),
        insecure=ov.get("insecure", False),
        debug=ov.get("debug", False),
        yaml_fallbacks=yaml_fallbacks,
    )
    logger.info("Semble PDS: %s as %s", config.pds_url, config.identifier)
    return config, unified


def sync_project(
    project: str,
    options: SyncOptions | None = None,
    overrides: dict[str, Any] | None = None,
) -> SyncResult:
    """Load a project's vault objects and sync them with Semble.

    Projects missing from the config file use the default profile.

    Raises:
        ConfigurationError: If credentials are missing or the project has
            sync disabled.
        AuthenticationError: If login fails.
    """
    config, unified = bootstrap(overrides)
    return _run_project(config, unified, project, options)


def _run_project(
    config: Config,
    unified: UnifiedConfig,
    project: str,
    options: SyncOptions | None,
) -> SyncResult:
    profile = unified.projects.get(project) or ProjectSyncConfig()
    if not profile.enabled:
        raise ConfigurationError(f"Sync is disabled for project '{project}'")

    objects = load_vault_objects(Path(profile.content_root), project)
    logger.info("Loaded %d objects for project %s", len(objects), project)

    engine = SyncEngine(
        client=SembleClient(config),
        config=config,
        project=project,
        profile=profile,
    )
    return engine.run(objects, options)


def sync_all(
    options: SyncOptions | None = None,
    overrides: dict[str, Any] | None = None,
) -> dict[str, SyncResult]:
    """Sync every enabled project in the config file, one after another."""
    config, unified = bootstrap(overrides)
    results: dict[str, SyncResult] = {}
    for project in unified.enabled_projects():
        results[project] = _run_project(config, unified, project, options)
    return results


def list_collections(
    overrides: dict[str, Any] | None = None,
) -> list[dict[str, str | None]]:
    """List the account's collections as name/uri/description dicts."""
    config, _ = bootstrap(overrides)
    client = SembleClient(config)
    client.login()
    return [
        {
            "name": record["value"].get("name"),
            "uri": record["uri"],
            "description": record["value"].get("description"),
        }
        for record in client.list_collections()
    ]
