"""Unified configuration schema for design_sync.

Defines Pydantic models for the config structure with dedicated sections
for sync behavior and logging.

Usage:
    from design_sync.config_schema import UnifiedConfig, build_config

    raw = load_hierarchical_config()
    unified = build_config(raw)
    engine = SyncEngine(SyncContext(), config=unified.sync)
"""

from __future__ import annotations

import logging
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator

from design_sync.models import SourceLanguage

logger = logging.getLogger(__name__)


class SyncMode(str, Enum):
    """Whether inbound change events drive a sync cycle on their own."""

    AUTOMATIC = "automatic"
    MANUAL = "manual"


class ConflictStrategy(str, Enum):
    """Which side wins when both edited the same component."""

    PREFER_TREE = "preferTree"
    PREFER_SOURCE = "preferSource"
    MANUAL = "manual"


# ---------------------------------------------------------------------------
# Section models
# ---------------------------------------------------------------------------


class SyncConfig(BaseModel):
    """Sync engine settings.

    Field names accept both ``snake_case`` and the camelCase aliases used
    by editor front-ends (``syncMode``, ``conflictStrategy``, ...).
    """

    sync_mode: SyncMode = Field(
        default=SyncMode.AUTOMATIC,
        alias="syncMode",
        description="automatic: change events trigger a sync cycle",
    )
    conflict_strategy: ConflictStrategy = Field(
        default=ConflictStrategy.PREFER_TREE,
        alias="conflictStrategy",
        description="Resolution policy for components edited on both sides",
    )
    source_language: SourceLanguage = Field(
        default=SourceLanguage.JSX,
        alias="sourceLanguage",
        description="Language of the live source document",
    )
    source_path: str = Field(
        default="index.jsx",
        alias="sourcePath",
        description="Document name used in derived component ids",
    )

    model_config = ConfigDict(frozen=True, populate_by_name=True, extra="forbid")

    @field_validator("source_language")
    @classmethod
    def _script_language(cls, value: SourceLanguage) -> SourceLanguage:
        # regenerated source is JSX; html would reparse it as plain strings
        if value not in (SourceLanguage.JSX, SourceLanguage.JAVASCRIPT):
            raise ValueError(
                f"source_language must be jsx or javascript, not {value.value}"
            )
        return value

    def merged(self, changes: dict[str, Any]) -> SyncConfig:
        """Return a validated copy with ``changes`` applied.

        Keys may be field names or aliases; unknown keys raise
        ``pydantic.ValidationError``.
        """
        data = self.model_dump(by_alias=True)
        fields = type(self).model_fields
        for key, value in changes.items():
            field = fields.get(key)
            data[field.alias if field and field.alias else key] = value
        return type(self).model_validate(data)


class LoggingConfig(BaseModel):
    """Logging configuration.

    Attributes:
        level: Log level name (DEBUG, INFO, WARNING, ERROR, CRITICAL).
        file: Optional log file path.
        format: ``text`` or ``json`` output.
    """

    level: str = Field(default="INFO", description="Log level")
    file: str | None = Field(default=None, description="Log file path")
    format: str = Field(default="text", description="text or json")

    model_config = {"frozen": True}

    @field_validator("level")
    @classmethod
    def _known_level(cls, value: str) -> str:
        level = value.upper()
        if level not in {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}:
            raise ValueError(f"Unknown log level: {value}")
        return level

    @field_validator("format")
    @classmethod
    def _known_format(cls, value: str) -> str:
        if value not in {"text", "json"}:
            raise ValueError(f"Unknown log format: {value}")
        return value


# ---------------------------------------------------------------------------
# Top-level unified config
# ---------------------------------------------------------------------------


class UnifiedConfig(BaseModel):
    """Top-level unified configuration.

    Every section has sensible defaults, so ``UnifiedConfig()``
    (zero-config) is always valid.
    """

    sync: SyncConfig = Field(default_factory=SyncConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)

    model_config = {"frozen": True}


# ---------------------------------------------------------------------------
# Factory function
# ---------------------------------------------------------------------------


def build_config(raw_data: dict) -> UnifiedConfig:
    """Construct a ``UnifiedConfig`` from the raw dict returned by
    ``load_hierarchical_config()``.

    Handles missing sections gracefully; anything absent gets defaults.

    Args:
        raw_data: Merged configuration dictionary.

    Returns:
        Validated ``UnifiedConfig`` instance.
    """
    if not raw_data:
        return UnifiedConfig()

    unknown = set(raw_data) - set(UnifiedConfig.model_fields)
    if unknown:
        logger.warning("Ignoring unknown config sections: %s", sorted(unknown))

    return UnifiedConfig(
        **{key: value for key, value in raw_data.items() if key not in unknown}
    )
