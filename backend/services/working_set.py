from typing import Iterable, Iterator, Optional

from models.activity import Activity
from services.normalizer import normalize_timestamp


class WorkingSet:
    """Recent activities the synchronizer has already persisted, keyed by tx hash.

    Only decides whether a fetched trade needs to be re-read from the store;
    the database stays authoritative for execution state.
    """

    def __init__(self, activities: Optional[Iterable[Activity]] = None):
        self._entries: dict[str, Activity] = {}
        if activities:
            self.load(activities)

    def load(self, activities: Iterable[Activity]) -> None:
        self._entries = {a.transaction_hash: a for a in activities}

    def prune(self, cutoff: int, fresh_hashes: set[str]) -> int:
        """Drop entries older than ``cutoff`` that the latest fetch no longer reports.

        Returns the number of evicted entries.
        """
        kept = {}
        for tx_hash, activity in self._entries.items():
            timestamp = normalize_timestamp(activity.timestamp)
            if (timestamp is not None and timestamp >= cutoff) or tx_hash in fresh_hashes:
                kept[tx_hash] = activity
        evicted = len(self._entries) - len(kept)
        self._entries = kept
        return evicted

    def add(self, activity: Activity) -> None:
        self._entries[activity.transaction_hash] = activity

    def get(self, transaction_hash: str) -> Optional[Activity]:
        return self._entries.get(transaction_hash)

    def __contains__(self, transaction_hash: object) -> bool:
        return transaction_hash in self._entries

    def __len__(self) -> int:
        return len(self._entries)

    def __iter__(self) -> Iterator[Activity]:
        return iter(list(self._entries.values()))
