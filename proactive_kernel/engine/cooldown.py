"""Cooldown Ledger — time-boxed suppression of repeat interruptions."""

from datetime import datetime, timedelta
from typing import Dict, Optional


class CooldownLedger:
    """
    Map from interruption id to the time it last fired.

    Reading and writing are separate steps: `is_suppressed` never changes
    the ledger, `record_fired` is the only write. Entries are never pruned;
    the ledger lives and dies with its engine.
    """

    def __init__(self, window_seconds: int = 3600):
        self.window = timedelta(seconds=window_seconds)
        self._fired: Dict[str, datetime] = {}

    def last_fired(self, interruption_id: str) -> Optional[datetime]:
        return self._fired.get(interruption_id)

    def is_suppressed(self, interruption_id: str, now: datetime) -> bool:
        """True if the id fired less than one window ago."""
        last = self._fired.get(interruption_id)
        if last is None:
            return False
        return now - last < self.window

    def record_fired(self, interruption_id: str, now: datetime) -> None:
        self._fired[interruption_id] = now

    def __len__(self) -> int:
        return len(self._fired)

    def __contains__(self, interruption_id: str) -> bool:
        return interruption_id in self._fired
