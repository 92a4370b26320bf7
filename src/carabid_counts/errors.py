from __future__ import annotations

from typing import List, Sequence


class SampleDataError(ValueError):
    """Collected field samples that cannot be processed; the run must abort."""

    def __init__(self, reason: str, rows: Sequence[str]) -> None:
        self.reason = reason
        self.rows: List[str] = [str(row) for row in rows]
        shown = ", ".join(self.rows[:10])
        if len(self.rows) > 10:
            shown += f", … ({len(self.rows) - 10} more)"
        super().__init__(f"{reason}: {shown}")
