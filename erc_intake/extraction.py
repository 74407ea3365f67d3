# -*- coding: utf-8 -*-
"""
Extraction strategies - ERC Intake

Defines the single ``BaseExtractor`` interface shared by the strict
(cell-address) and heuristic (label-anchored) extractors, and the selection
step that runs the strict extractor first and falls back to the heuristic
one when the strict structural precondition fails.

Example:
    >>> from erc_intake.extraction import extract_workbook
    >>> from erc_intake.workbook import load_workbook
    >>> result = extract_workbook(load_workbook(content))
    >>> print(result.strategy, result.success)

Author: ERC Intake Team
Status: Production Ready
"""

from __future__ import annotations

import logging
import threading
from abc import ABC, abstractmethod
from datetime import datetime, timezone
from typing import Any, Dict, Optional

from erc_intake.config import ErcIntakeConfig, get_config
from erc_intake.models import ExtractedValues, ExtractionStrategy
from erc_intake.workbook import WorkbookHandle

logger = logging.getLogger(__name__)


def _utcnow() -> datetime:
    """Return current UTC datetime with microseconds zeroed."""
    return datetime.now(timezone.utc).replace(microsecond=0)


class BaseExtractor(ABC):
    """Strategy that turns a loaded workbook into a flat value map."""

    strategy: ExtractionStrategy = ExtractionStrategy.NONE

    def __init__(self, config: Optional[ErcIntakeConfig] = None) -> None:
        self._config = config or get_config()
        self._lock = threading.Lock()
        self._stats: Dict[str, int] = {
            "workbooks_extracted": 0,
            "successful": 0,
            "failed": 0,
            "warnings": 0,
        }

    @abstractmethod
    def extract(self, workbook: WorkbookHandle) -> ExtractedValues:
        """Extract values from a workbook. Never raises for bad content."""

    def _record(self, result: ExtractedValues) -> None:
        with self._lock:
            self._stats["workbooks_extracted"] += 1
            self._stats["successful" if result.success else "failed"] += 1
            self._stats["warnings"] += len(result.warnings)

    def get_statistics(self) -> Dict[str, Any]:
        with self._lock:
            stats: Dict[str, Any] = dict(self._stats)
        stats["strategy"] = self.strategy.value
        stats["timestamp"] = _utcnow().isoformat()
        return stats


class ExtractionEngine:
    """Runs strict extraction, then heuristic extraction when strict fails.

    Attributes:
        strict: Cell-address extractor.
        heuristic: Label-anchored fallback extractor.
    """

    def __init__(
        self,
        config: Optional[ErcIntakeConfig] = None,
        strict: Optional[BaseExtractor] = None,
        heuristic: Optional[BaseExtractor] = None,
    ) -> None:
        from erc_intake.heuristic_extractor import HeuristicExtractor
        from erc_intake.strict_extractor import StrictExtractor

        self._config = config or get_config()
        self.strict = strict if strict is not None else StrictExtractor(self._config)
        self.heuristic = heuristic if heuristic is not None else HeuristicExtractor(self._config)
        self._lock = threading.Lock()
        self._stats: Dict[str, int] = {
            "strict_used": 0,
            "heuristic_used": 0,
            "both_failed": 0,
        }

    def extract(self, workbook: WorkbookHandle) -> ExtractedValues:
        """Return the strict result if usable, else the heuristic result.

        When neither extractor succeeds the heuristic result is returned
        with the strict errors merged in front of its own.
        """
        strict_result = self.strict.extract(workbook)
        if strict_result.success:
            with self._lock:
                self._stats["strict_used"] += 1
            return strict_result

        logger.info(
            "Strict extraction failed (%s); falling back to heuristic extraction",
            "; ".join(strict_result.errors) or "no errors recorded",
        )
        heuristic_result = self.heuristic.extract(workbook)
        if heuristic_result.success:
            with self._lock:
                self._stats["heuristic_used"] += 1
            return heuristic_result

        with self._lock:
            self._stats["both_failed"] += 1
        heuristic_result.errors = list(strict_result.errors) + list(heuristic_result.errors)
        heuristic_result.warnings = list(strict_result.warnings) + list(heuristic_result.warnings)
        return heuristic_result

    def get_statistics(self) -> Dict[str, Any]:
        with self._lock:
            stats: Dict[str, Any] = dict(self._stats)
        stats["strict"] = self.strict.get_statistics()
        stats["heuristic"] = self.heuristic.get_statistics()
        stats["timestamp"] = _utcnow().isoformat()
        return stats


def extract_workbook(
    workbook: WorkbookHandle,
    config: Optional[ErcIntakeConfig] = None,
) -> ExtractedValues:
    """Extract a workbook with strict-then-heuristic selection."""
    return ExtractionEngine(config).extract(workbook)


__all__ = [
    "BaseExtractor",
    "ExtractionEngine",
    "extract_workbook",
]
