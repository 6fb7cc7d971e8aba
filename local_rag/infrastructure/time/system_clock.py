"""System clock adapter providing real UTC time.

Production implementation of ClockPort; tests inject a fixed clock.
"""

from __future__ import annotations

from datetime import datetime, timezone

from local_rag.application.ports.clock_port import ClockPort


class SystemClock(ClockPort):
    def now(self) -> datetime:
        return datetime.now(timezone.utc)
