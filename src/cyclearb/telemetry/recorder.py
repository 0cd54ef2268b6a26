"""
CSV log of scored opportunities for offline analysis.
"""

import csv
import logging
import threading
from collections.abc import Iterable
from pathlib import Path

from cyclearb.core.types import Opportunity
from cyclearb.utils.time import format_timestamp_ms


logger = logging.getLogger(__name__)


FIELDNAMES = (
    "timestamp",
    "length",
    "net_yield",
    "surface_rate",
    "z_score",
    "confidence",
    "history_samples",
    "key",
    "path",
    "dispatched",
)


class OpportunityRecorder:
    """
    Appends every scored opportunity to a CSV file.

    The header is written only when the file is created.
    """

    def __init__(self, path: Path) -> None:
        """
        Initialize recorder.

        Args:
            path: CSV file to append to.
        """
        self._path = path
        self._lock = threading.Lock()
        self._rows_written = 0

    def record(self, opportunities: Iterable[Opportunity]) -> int:
        """
        Append opportunities to the file.

        Args:
            opportunities: Scored opportunities of one pass.

        Returns:
            Number of rows written.
        """
        rows = [self._to_row(opp) for opp in opportunities]
        if not rows:
            return 0

        with self._lock:
            self._path.parent.mkdir(parents=True, exist_ok=True)
            write_header = not self._path.exists() or self._path.stat().st_size == 0

            with self._path.open("a", newline="", encoding="utf-8") as f:
                writer = csv.DictWriter(f, fieldnames=FIELDNAMES)
                if write_header:
                    writer.writeheader()
                writer.writerows(rows)

            self._rows_written += len(rows)

        logger.debug(f"Recorded {len(rows)} opportunities to {self._path}")
        return len(rows)

    @staticmethod
    def _to_row(opp: Opportunity) -> dict[str, object]:
        return {
            "timestamp": format_timestamp_ms(opp.timestamp_ms),
            "length": opp.cycle.length,
            "net_yield": f"{opp.net_yield:.10f}",
            "surface_rate": f"{opp.surface_rate:.10f}",
            "z_score": f"{opp.z_score:.4f}",
            "confidence": f"{opp.confidence:.4f}",
            "history_samples": opp.history_samples,
            "key": opp.key,
            "path": "->".join(opp.route),
            "dispatched": int(opp.dispatched),
        }

    @property
    def path(self) -> Path:
        """Target CSV file."""
        return self._path

    @property
    def rows_written(self) -> int:
        """Rows written since startup."""
        return self._rows_written
