"""
In-flight guard - one outstanding transaction per trigger.

Key design:
- Keyed by ("sell", strategy_id, index) or ("buy", strategy_id)
- A key is held from the dry run until the registry reflects the result
- Failed attempts release the key so the trigger is retried next cycle
- Entries older than the TTL are dropped (a dropped tx must not block forever)
"""
import logging
import time
from typing import Callable, Dict, List, Optional

from execution.tx_state import InFlightEntry, InFlightStatus, TriggerKey, format_key

logger = logging.getLogger(__name__)


class InFlightGuard:
    """In-memory only. The registry stays authoritative for executed state."""

    def __init__(self, ttl_seconds: float, clock: Callable[[], float] = time.time):
        self.ttl_seconds = ttl_seconds
        self.clock = clock
        self._entries: Dict[TriggerKey, InFlightEntry] = {}

    # =========================================================================
    # ACQUIRE / RELEASE / UPDATE
    # =========================================================================

    def acquire(self, key: TriggerKey, snapshot) -> bool:
        """Take the guard. Returns False if the key is already held."""
        self._expire(key)
        if key in self._entries:
            return False
        self._entries[key] = InFlightEntry(key=key, snapshot=snapshot, created_at=self.clock())
        return True

    def release(self, key: TriggerKey) -> Optional[InFlightEntry]:
        return self._entries.pop(key, None)

    def mark_submitted(self, key: TriggerKey, tx_hash: str):
        entry = self._entries.get(key)
        if entry:
            entry.status = InFlightStatus.SUBMITTED
            entry.tx_hash = tx_hash

    def mark_confirmed(self, key: TriggerKey):
        entry = self._entries.get(key)
        if entry:
            entry.status = InFlightStatus.CONFIRMED

    def settle(self, key: TriggerKey, snapshot) -> bool:
        """
        Release a confirmed entry once the registry shows the change.

        Args:
            key: Trigger key
            snapshot: Value just read from the registry

        Returns:
            True if the entry was released
        """
        entry = self._entries.get(key)
        if entry and entry.status is InFlightStatus.CONFIRMED and snapshot != entry.snapshot:
            del self._entries[key]
            logger.info(f"[INFLIGHT] {format_key(key)} settled on-chain, guard released")
            return True
        return False

    # =========================================================================
    # QUERIES
    # =========================================================================

    def is_held(self, key: TriggerKey) -> bool:
        self._expire(key)
        return key in self._entries

    def get(self, key: TriggerKey) -> Optional[InFlightEntry]:
        return self._entries.get(key)

    def submitted(self) -> List[InFlightEntry]:
        """Entries with a sent transaction and no receipt yet."""
        return [e for e in self._entries.values() if e.status is InFlightStatus.SUBMITTED]

    def __len__(self) -> int:
        return len(self._entries)

    def sweep_expired(self) -> int:
        """Drop every entry older than the TTL. Returns how many were dropped."""
        before = len(self._entries)
        for key in list(self._entries):
            self._expire(key)
        return before - len(self._entries)

    def _expire(self, key: TriggerKey):
        entry = self._entries.get(key)
        if entry and self.clock() - entry.created_at > self.ttl_seconds:
            del self._entries[key]
            logger.warning(
                f"[INFLIGHT] {format_key(key)} held for over {self.ttl_seconds:.0f}s "
                f"(status={entry.status.value}, tx={entry.tx_hash}) - releasing"
            )
