"""Match identity keys and the in-process escalation memory.

Dedup key format: "<sorted film codes>|<sorted theatre names>"
  - Without cinema keywords the theatre part is "all".
  - Legacy single-name tracking uses "legacy:<target name>".

Keys are never evicted. The set only grows with distinct
(film set, theatre set) situations, which stays small in practice.
"""

import logging
import threading
from typing import Iterable

logger = logging.getLogger(__name__)

ALL_THEATRES = "all"
LEGACY_PREFIX = "legacy:"


def build_match_key(film_codes: Iterable[str], theatre_names: Iterable[str] | None) -> str | None:
    """Canonical key for a film/theatre situation, None without film codes.

    Pass theatre_names=None when no cinema keywords are configured.
    """
    codes = sorted(set(film_codes))
    if not codes:
        return None
    theatres = ALL_THEATRES if theatre_names is None else ",".join(sorted(set(theatre_names)))
    return f"{','.join(codes)}|{theatres}"


def legacy_match_key(target_name: str) -> str:
    return f"{LEGACY_PREFIX}{target_name}"


class MatchMemory:
    """Remembers which match keys already triggered an escalation."""

    def __init__(self) -> None:
        self._seen: set[str] = set()
        self._lock = threading.Lock()

    def should_escalate(self, key: str) -> bool:
        """True the first time a key is seen, False ever after."""
        with self._lock:
            if key in self._seen:
                return False
            self._seen.add(key)
            return True

    def release(self, key: str) -> None:
        """Forget a key so the next cycle may escalate it again."""
        with self._lock:
            self._seen.discard(key)

    def __contains__(self, key: str) -> bool:
        return key in self._seen

    def __len__(self) -> int:
        return len(self._seen)
