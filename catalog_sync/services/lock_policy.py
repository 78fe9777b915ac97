"""Manual update locks that protect catalog records from the sync."""
from typing import Any, Optional, Sequence, Tuple

from catalog_sync.models.catalog_record import AttributeSnapshot, LOCK_KEYS
from catalog_sync.models.pending_change import LockReason

# Exactly these encodings mean "locked"; anything else is unlocked
_TRUE_STRINGS = frozenset({"1", "yes"})


def normalize_lock_value(value: Any) -> bool:
    """Collapse a stored lock flag to locked (True) or unlocked (False).

    Locked encodings are boolean True, the integer 1, and the strings "1"
    and "yes". No case folding or trimming is applied: "Yes", " 1" and
    "true" are unlocked.
    """
    if value is True:
        return True
    if isinstance(value, bool):
        return False
    if isinstance(value, int):
        return value == 1
    if isinstance(value, str):
        return value in _TRUE_STRINGS
    return False


class LockPolicy:
    """Checks lock attributes in priority order and reports the first hit."""

    def __init__(self, lock_keys: Sequence[Tuple[str, str]] = LOCK_KEYS):
        self.lock_keys = tuple(lock_keys)

    def evaluate(self, snapshot: AttributeSnapshot) -> Optional[LockReason]:
        """First active lock of the record, None when unlocked."""
        for key, label in self.lock_keys:
            if normalize_lock_value(snapshot.locks.get(key)):
                return LockReason(key=key, label=label)
        return None
