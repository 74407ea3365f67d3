# -*- coding: utf-8 -*-
"""
ERC Intake Service Configuration

Centralized configuration for the ERC workbook intake pipeline covering:
- Source workbook sheet names (primary and auxiliary tabs)
- Workbook size limits and fetch timeout
- Batch processing defaults (inter-job delay, row limit)
- Export defaults (case id sequence, preparer, template version)
- Local source directory for offline batch runs
- Logging level

All settings can be overridden via environment variables with the
``ERC_INTAKE_`` prefix (e.g. ``ERC_INTAKE_BATCH_INTER_JOB_DELAY_MS``).

Example:
    >>> from erc_intake.config import get_config
    >>> cfg = get_config()
    >>> print(cfg.primary_sheet_name, cfg.batch_inter_job_delay_ms)

Author: ERC Intake Team
Status: Production Ready
"""

from __future__ import annotations

import logging
import os
import threading
from dataclasses import dataclass
from typing import Any, Optional

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Environment variable prefix
# ---------------------------------------------------------------------------

_ENV_PREFIX = "ERC_INTAKE_"


# ---------------------------------------------------------------------------
# ErcIntakeConfig
# ---------------------------------------------------------------------------


@dataclass
class ErcIntakeConfig:
    """Complete configuration for the ERC intake pipeline.

    Attributes are grouped by concern: workbook layout, limits, batch
    processing, export defaults, sources, and logging.

    Attributes:
        primary_sheet_name: Tab that must exist for strict extraction.
        data_dump_sheet_name: Auxiliary tab holding company identity cells.
        form941_sheet_name: Auxiliary tab holding Form 941 quarterly rows.
        max_workbook_size_mb: Largest workbook accepted from a source.
        fetch_timeout_seconds: Timeout applied to a single workbook fetch.
        batch_inter_job_delay_ms: Pause between consecutive batch jobs.
        batch_max_rows: Maximum rows accepted in one batch input file.
        case_id_sequence: Constant sequence suffix used in bulk case ids.
        original_preparer: Value emitted in the bulk ``original_preparer`` field.
        template_version: Template version stamped on canonical records.
        source_dir: Default directory for the local workbook source.
        remove_links_default: Whether hybrid exports strip links by default.
        log_level: Level the CLI applies to the ``erc_intake`` loggers.
    """

    # -- Workbook layout -----------------------------------------------------
    primary_sheet_name: str = "Understandable Data-final"
    data_dump_sheet_name: str = "Data Dump"
    form941_sheet_name: str = "941 form"

    # -- Limits --------------------------------------------------------------
    max_workbook_size_mb: int = 50
    fetch_timeout_seconds: float = 60.0

    # -- Batch processing ----------------------------------------------------
    batch_inter_job_delay_ms: int = 500
    batch_max_rows: int = 1000

    # -- Export defaults -----------------------------------------------------
    case_id_sequence: str = "001"
    original_preparer: str = "ERC Portal"
    template_version: str = "1.0"

    # -- Sources -------------------------------------------------------------
    source_dir: str = ""
    remove_links_default: bool = False

    # -- Logging -------------------------------------------------------------
    log_level: str = "INFO"

    # ------------------------------------------------------------------
    # Factory helpers
    # ------------------------------------------------------------------

    @classmethod
    def from_env(cls) -> ErcIntakeConfig:
        """Build an ErcIntakeConfig from environment variables.

        Every field can be overridden via ``ERC_INTAKE_<FIELD_UPPER>``.
        Boolean values accept ``true/1/yes`` (case-insensitive).
        Integer values are parsed via ``int()``.
        Float values are parsed via ``float()``.

        Returns:
            Populated ErcIntakeConfig instance.
        """
        prefix = _ENV_PREFIX

        def _env(name: str, default: Any = None) -> Optional[str]:
            return os.environ.get(f"{prefix}{name}", default)

        def _bool(name: str, default: bool) -> bool:
            val = _env(name)
            if val is None:
                return default
            return val.lower() in ("true", "1", "yes")

        def _int(name: str, default: int) -> int:
            val = _env(name)
            if val is None:
                return default
            try:
                return int(val)
            except ValueError:
                logger.warning(
                    "Invalid integer for %s%s=%s, using default %d",
                    prefix, name, val, default,
                )
                return default

        def _float(name: str, default: float) -> float:
            val = _env(name)
            if val is None:
                return default
            try:
                return float(val)
            except ValueError:
                logger.warning(
                    "Invalid float for %s%s=%s, using default %f",
                    prefix, name, val, default,
                )
                return default

        def _str(name: str, default: str) -> str:
            val = _env(name)
            if val is None:
                return default
            return val

        config = cls(
            primary_sheet_name=_str(
                "PRIMARY_SHEET_NAME", cls.primary_sheet_name,
            ),
            data_dump_sheet_name=_str(
                "DATA_DUMP_SHEET_NAME", cls.data_dump_sheet_name,
            ),
            form941_sheet_name=_str(
                "FORM941_SHEET_NAME", cls.form941_sheet_name,
            ),
            max_workbook_size_mb=_int(
                "MAX_WORKBOOK_SIZE_MB", cls.max_workbook_size_mb,
            ),
            fetch_timeout_seconds=_float(
                "FETCH_TIMEOUT_SECONDS", cls.fetch_timeout_seconds,
            ),
            batch_inter_job_delay_ms=_int(
                "BATCH_INTER_JOB_DELAY_MS", cls.batch_inter_job_delay_ms,
            ),
            batch_max_rows=_int("BATCH_MAX_ROWS", cls.batch_max_rows),
            case_id_sequence=_str(
                "CASE_ID_SEQUENCE", cls.case_id_sequence,
            ),
            original_preparer=_str(
                "ORIGINAL_PREPARER", cls.original_preparer,
            ),
            template_version=_str(
                "TEMPLATE_VERSION", cls.template_version,
            ),
            source_dir=_str("SOURCE_DIR", cls.source_dir),
            remove_links_default=_bool(
                "REMOVE_LINKS_DEFAULT", cls.remove_links_default,
            ),
            log_level=_str("LOG_LEVEL", cls.log_level),
        )

        logger.info(
            "ErcIntakeConfig loaded: primary_sheet=%r, max_workbook_mb=%d, "
            "fetch_timeout=%.1fs, inter_job_delay_ms=%d, batch_max_rows=%d",
            config.primary_sheet_name,
            config.max_workbook_size_mb,
            config.fetch_timeout_seconds,
            config.batch_inter_job_delay_ms,
            config.batch_max_rows,
        )
        return config


# ---------------------------------------------------------------------------
# Thread-safe singleton accessor
# ---------------------------------------------------------------------------

_config_instance: Optional[ErcIntakeConfig] = None
_config_lock = threading.Lock()


def get_config() -> ErcIntakeConfig:
    """Return the singleton ErcIntakeConfig, creating from env if needed.

    Returns:
        ErcIntakeConfig singleton instance.
    """
    global _config_instance
    if _config_instance is None:
        with _config_lock:
            if _config_instance is None:
                _config_instance = ErcIntakeConfig.from_env()
    return _config_instance


def set_config(config: ErcIntakeConfig) -> None:
    """Replace the singleton ErcIntakeConfig (useful for testing).

    Args:
        config: New configuration to install.
    """
    global _config_instance
    with _config_lock:
        _config_instance = config
    logger.info("ErcIntakeConfig replaced programmatically")


def reset_config() -> None:
    """Reset the singleton (primarily for test teardown)."""
    global _config_instance
    with _config_lock:
        _config_instance = None


__all__ = [
    "ErcIntakeConfig",
    "get_config",
    "set_config",
    "reset_config",
]
