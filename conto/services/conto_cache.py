"""
Short-lived cache for computed conto views (summary, breakdown).

Process-local: each instance keeps its own entries. Any write to the
ledgers clears everything, since a single row can change totals for
every scope.
"""
from typing import Any, Callable, Dict, Optional, Tuple
import json
import logging
import time

logger = logging.getLogger(__name__)

SUMMARY = "summary"
BREAKDOWN = "breakdown"


class ContoCache:
    """In-memory TTL cache with one map per namespace."""

    def __init__(
        self,
        ttl_seconds: float = 60.0,
        enabled: bool = True,
        clock: Callable[[], float] = time.monotonic
    ):
        self.ttl_seconds = ttl_seconds
        self.enabled = enabled
        self._clock = clock
        self._stores: Dict[str, Dict[str, Tuple[float, Any]]] = {
            SUMMARY: {},
            BREAKDOWN: {},
        }

    @staticmethod
    def make_key(user_id: Optional[str], role: Optional[str], params: Dict[str, Any]) -> str:
        return f"{user_id or 'anon'}|{role or 'none'}|{json.dumps(params, sort_keys=True, default=str)}"

    def get(self, namespace: str, key: str) -> Optional[Any]:
        if not self.enabled:
            return None
        store = self._stores.setdefault(namespace, {})
        hit = store.get(key)
        if hit is None:
            return None
        stored_at, value = hit
        if self._clock() - stored_at > self.ttl_seconds:
            del store[key]
            return None
        return value

    def set(self, namespace: str, key: str, value: Any) -> None:
        if not self.enabled:
            return
        self._stores.setdefault(namespace, {})[key] = (self._clock(), value)

    def clear(self) -> None:
        entries = sum(len(store) for store in self._stores.values())
        for store in self._stores.values():
            store.clear()
        logger.debug(f"Conto cache cleared ({entries} entries)")

    def __len__(self) -> int:
        return sum(len(store) for store in self._stores.values())
