"""Unified configuration schema for bisync.

Defines Pydantic models for the config structure: a ``bisync`` section
holding the run options and a ``logging`` section.

Usage:
    from bisync.config_loader import load_hierarchical_config
    from bisync.config_schema import build_config

    raw = load_hierarchical_config()
    unified = build_config(raw)
    options = unified.bisync
"""

from __future__ import annotations

import logging
from enum import Enum
from typing import Literal

from pydantic import BaseModel, Field, model_validator

logger = logging.getLogger(__name__)

DEFAULT_CHECK_FILENAME = "BISYNC_CHECK"
DEFAULT_WORKDIR = "~/.cache/bisync"


class CheckSyncMode(str, Enum):
    """When to compare the two prior listings with each other."""

    TRUE = "true"
    FALSE = "false"
    ONLY = "only"


# ---------------------------------------------------------------------------
# Section models
# ---------------------------------------------------------------------------


class BisyncOptions(BaseModel):
    """Options for a single bisync run.

    Every field has a default, so ``BisyncOptions()`` is a valid normal
    run.  The CLI maps its flags 1:1 onto these fields.
    """

    resync: bool = Field(
        default=False,
        description="Re-establish the baseline listings (Path1 wins)",
    )
    dry_run: bool = Field(
        default=False, description="Show what would be done, change nothing"
    )
    force: bool = Field(
        default=False,
        description="Bypass the excess-delete and all-changed guards",
    )
    check_access: bool = Field(
        default=False,
        description="Require matching check files on both sides",
    )
    check_filename: str = Field(
        default=DEFAULT_CHECK_FILENAME,
        min_length=1,
        description="Base name of the access check files",
    )
    check_sync: CheckSyncMode = Field(
        default=CheckSyncMode.TRUE,
        description="Compare final listings: true, false or only",
    )
    max_delete: int = Field(
        default=50,
        ge=0,
        le=100,
        description="Abort if more than this percent of files are deleted",
    )
    max_delete_count: int | None = Field(
        default=None,
        ge=0,
        description="Abort if more than this many files are deleted",
    )
    remove_empty_dirs: bool = Field(
        default=False,
        description="Remove empty directories on both sides after a run",
    )
    create_empty_src_dirs: bool = Field(
        default=False,
        description="Track and propagate empty directories",
    )
    resilient: bool = Field(
        default=False,
        description="Keep listings after retryable critical errors",
    )
    no_cleanup: bool = Field(
        default=False,
        description="Keep the intermediate -new listings",
    )
    workdir: str = Field(
        default=DEFAULT_WORKDIR,
        description="Directory holding listings and lock files",
    )
    exclude: list[str] = Field(
        default_factory=list,
        description="fnmatch patterns of relative paths to ignore",
    )
    transfers: int = Field(
        default=4,
        ge=1,
        le=64,
        description="Number of parallel transfers (1-64)",
    )
    compare_hash: bool = Field(
        default=False,
        description="Also compare hashes when detecting changes",
    )
    conflict_suffix1: str = Field(
        default="..path1",
        min_length=1,
        description="Suffix for the Path1 copy of a conflicting file",
    )
    conflict_suffix2: str = Field(
        default="..path2",
        min_length=1,
        description="Suffix for the Path2 copy of a conflicting file",
    )

    model_config = {"frozen": True}

    @model_validator(mode="after")
    def _distinct_suffixes(self) -> BisyncOptions:
        if self.conflict_suffix1 == self.conflict_suffix2:
            raise ValueError("conflict suffixes must differ")
        return self


class LoggingConfig(BaseModel):
    """Logging configuration.

    Attributes:
        level: Log level name (DEBUG, INFO, WARNING, ERROR, CRITICAL).
        file: Optional log file path.
        format: ``"text"`` or ``"json"``.
    """

    level: str = Field(default="INFO", description="Log level")
    file: str | None = Field(default=None, description="Log file path")
    format: Literal["text", "json"] = Field(
        default="text", description="Log line format"
    )

    model_config = {"frozen": True}


# ---------------------------------------------------------------------------
# Top-level unified config
# ---------------------------------------------------------------------------


class UnifiedConfig(BaseModel):
    """Top-level configuration.  ``UnifiedConfig()`` is always valid."""

    bisync: BisyncOptions = Field(default_factory=BisyncOptions)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)

    model_config = {"frozen": True}


def build_config(raw_data: dict) -> UnifiedConfig:
    """Construct a ``UnifiedConfig`` from the raw merged YAML dict.

    Missing sections get defaults.  Unknown top-level keys are logged and
    ignored.

    Args:
        raw_data: Merged configuration dictionary.

    Returns:
        Validated ``UnifiedConfig`` instance.
    """
    if not raw_data:
        return UnifiedConfig()

    known = set(UnifiedConfig.model_fields)
    unknown = sorted(set(raw_data) - known)
    if unknown:
        logger.warning(
            "Ignoring unknown config sections: %s", ", ".join(unknown)
        )
    return UnifiedConfig(
        **{k: v for k, v in raw_data.items() if k in known}
    )
