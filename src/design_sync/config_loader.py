"""
Hierarchical configuration loader for design_sync.

Provides convention-based config file discovery, YAML !include support,
env var interpolation, environment overrides and a hierarchical merge with
"project wins" semantics.

Usage:
    from design_sync.config_loader import load_config

    config = load_config()
    engine = SyncEngine(SyncContext(), config=config.sync)
"""

import logging
import os
import re
from pathlib import Path
from typing import Any

import yaml
from dotenv import load_dotenv

from design_sync.config_schema import UnifiedConfig, build_config

logger = logging.getLogger(__name__)

CONFIG_ENV_VAR = "DESIGN_SYNC_CONFIG"

# Environment variable -> (section, key) it overrides
ENV_OVERRIDES: dict[str, tuple[str, str]] = {
    "DESIGN_SYNC_MODE": ("sync", "sync_mode"),
    "DESIGN_SYNC_CONFLICT_STRATEGY": ("sync", "conflict_strategy"),
    "DESIGN_SYNC_LANGUAGE": ("sync", "source_language"),
}

# ---------------------------------------------------------------------------
# 1. Env var interpolation
# ---------------------------------------------------------------------------

# Matches ${VAR} and ${VAR:-default}
_ENV_VAR_PATTERN = re.compile(r"\$\{([^}:]+?)(?::-(.*?))?\}")


def interpolate_env_vars(value: str) -> str:
    """Replace ``${VAR}`` and ``${VAR:-default}`` patterns with env values.

    * ``${VAR}`` is replaced with ``os.environ.get(VAR, "")``.
    * ``${VAR:-default}`` uses *default* when VAR is unset or empty.
    * Literal ``${`` with no closing ``}`` is left untouched.
    """

    def _replace(match: re.Match) -> str:
        env_val = os.environ.get(match.group(1))
        if env_val:
            return env_val
        return match.group(2) or ""

    return _ENV_VAR_PATTERN.sub(_replace, value)


def _interpolate_recursive(obj: Any) -> Any:
    """Walk a nested dict/list and interpolate env vars in all strings."""
    if isinstance(obj, str):
        return interpolate_env_vars(obj)
    if isinstance(obj, dict):
        return {k: _interpolate_recursive(v) for k, v in obj.items()}
    if isinstance(obj, list):
        return [_interpolate_recursive(item) for item in obj]
    return obj


# ---------------------------------------------------------------------------
# 2. YAML !include support (dedicated SafeLoader subclass)
# ---------------------------------------------------------------------------


class ConfigLoader(yaml.SafeLoader):
    """YAML SafeLoader subclass with ``!include`` support.

    Uses a dedicated subclass so the global ``yaml.SafeLoader`` is never
    modified. Tracks an *include stack* per-load to detect circular includes.
    """


def _include_constructor(loader: ConfigLoader, node: yaml.ScalarNode) -> Any:
    """Handle ``!include path/to/file.yml`` directives."""
    include_path = Path(loader.construct_scalar(node))
    if not include_path.is_absolute():
        # loader.name is the path of the file being parsed
        include_path = Path(loader.name).resolve().parent / include_path
    include_path = include_path.resolve()

    include_stack: list[Path] = getattr(loader, "_include_stack", [])
    if include_path in include_stack:
        chain = " -> ".join(str(p) for p in [*include_stack, include_path])
        raise ValueError(f"Circular include detected: {chain}")

    if not include_path.exists():
        raise FileNotFoundError(
            f"Include file not found: {include_path} "
            f"(referenced from {Path(loader.name).resolve()})"
        )

    return _load_yaml_with_includes(
        include_path, _include_stack=[*include_stack, include_path]
    )


ConfigLoader.add_constructor("!include", _include_constructor)


def _load_yaml_with_includes(
    path: Path,
    *,
    _include_stack: list[Path] | None = None,
) -> Any:
    """Load a YAML file using the ``ConfigLoader`` (with ``!include``)."""
    path = path.resolve()
    if _include_stack is None:
        _include_stack = [path]

    with open(path, "r", encoding="utf-8") as fh:
        loader = ConfigLoader(fh)
        loader._include_stack = _include_stack  # type: ignore[attr-defined]
        try:
            return loader.get_single_data()
        finally:
            loader.dispose()


# ---------------------------------------------------------------------------
# 3. Convention-based file discovery
# ---------------------------------------------------------------------------


def discover_config_files() -> list[Path]:
    """Return existing config file paths in precedence order (highest first).

    Search order:
        1. ``DESIGN_SYNC_CONFIG`` env var (explicit single path)
        2. ``.design_sync/config.yml`` in CWD (project-level)
        3. ``~/.config/design_sync/config.yml`` (XDG global)

    Only paths that exist on disk are returned.
    """
    candidates: list[Path] = []

    env_path = os.environ.get(CONFIG_ENV_VAR)
    if env_path:
        candidates.append(Path(env_path).expanduser().resolve())

    candidates.append(Path.cwd() / ".design_sync" / "config.yml")
    candidates.append(Path.home() / ".config" / "design_sync" / "config.yml")

    return [p for p in candidates if p.exists()]


_STARTER_CONFIG = """\
# design-sync configuration
#
# Sync settings can also be set via environment variables:
#   DESIGN_SYNC_MODE, DESIGN_SYNC_CONFLICT_STRATEGY, DESIGN_SYNC_LANGUAGE
#
# sync:
#   sync_mode: automatic          # automatic | manual
#   conflict_strategy: preferTree # preferTree | preferSource | manual
#   source_language: jsx          # jsx | javascript
#   source_path: index.jsx
#
# logging:
#   level: INFO
#   file: null
#   format: text
"""


def ensure_config(target: Path | None = None) -> Path:
    """Ensure a config file exists, creating directory and starter file if needed.

    If a config file already exists (per ``discover_config_files()``),
    return its path without modification.

    Args:
        target: Explicit path to create. If ``None``, uses
            ``CWD / .design_sync / config.yml``.

    Returns:
        Path to the config file (existing or newly created).
    """
    existing = discover_config_files()
    if existing:
        logger.debug("Config file already exists: %s", existing[0])
        return existing[0]

    config_path = target or Path.cwd() / ".design_sync" / "config.yml"
    config_path.parent.mkdir(parents=True, exist_ok=True)
    config_path.write_text(_STARTER_CONFIG, encoding="utf-8")
    logger.info("Created starter config: %s", config_path)
    return config_path


# ---------------------------------------------------------------------------
# 4. Hierarchical merge
# ---------------------------------------------------------------------------


def load_hierarchical_config() -> dict[str, Any]:
    """Load and merge all discovered config files.

    Merge strategy ("project wins"):
        Files are loaded from lowest precedence to highest. Each file's
        top-level keys **replace** (not deep-merge) those from earlier files.

    After merging, env var interpolation is applied to all string values.

    Returns an empty dict when no config files exist (zero-config).
    """
    paths = discover_config_files()

    if not paths:
        logger.debug("No config files found, using zero-config defaults")
        return {}

    merged: dict[str, Any] = {}
    for path in reversed(paths):
        logger.debug("Loading config: %s", path)
        try:
            data = _load_yaml_with_includes(path)
        except Exception:
            logger.exception("Failed to load config file %s", path)
            raise

        if isinstance(data, dict):
            merged.update(data)
        elif data is not None:
            logger.warning(
                "Config file %s has non-dict root (%s), skipping",
                path,
                type(data).__name__,
            )

    return _interpolate_recursive(merged)


# Camel-case spellings accepted for the overridable keys
_ALIASES: dict[str, tuple[str, ...]] = {
    "sync_mode": ("syncMode",),
    "conflict_strategy": ("conflictStrategy",),
    "source_language": ("sourceLanguage",),
}


def apply_env_overrides(raw: dict[str, Any]) -> dict[str, Any]:
    """Overlay ``DESIGN_SYNC_*`` environment variables on a raw config."""
    result = {
        key: dict(value) if isinstance(value, dict) else value
        for key, value in raw.items()
    }
    for env_var, (section, key) in ENV_OVERRIDES.items():
        value = os.environ.get(env_var)
        if not value:
            continue
        target = result.setdefault(section, {})
        if not isinstance(target, dict):
            logger.warning(
                "Config section %r is not a mapping, skipping %s", section, env_var
            )
            continue
        # drop an alias spelling of the same key so the override wins
        for alias in _ALIASES.get(key, ()):
            target.pop(alias, None)
        target[key] = value
        logger.debug("Config override from %s", env_var)
    return result


def load_config() -> UnifiedConfig:
    """Build the effective configuration.

    Precedence: environment > project config > global config > defaults.
    A ``.env`` file in the working directory is loaded first.

    Raises:
        pydantic.ValidationError: If a value is invalid.
    """
    load_dotenv()
    return build_config(apply_env_overrides(load_hierarchical_config()))
