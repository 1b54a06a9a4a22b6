"""
Ordering contract for shard streams
Groups are ordered by token, and within a token the Total group sorts before
every category. The aggregation stage depends on this to divide in one pass.
"""

from functools import cmp_to_key
from typing import Iterable, List, Tuple

from common.keys import GroupKey


class TotalFirstOrdering:
    """Comparator that places a token's Total key before its category keys"""

    def sort_key(self, key: GroupKey) -> Tuple:
        if key.tag.is_total:
            return (key.token, 0, 0)
        return (key.token, 1, key.tag.value)

    def compare(self, a: GroupKey, b: GroupKey) -> int:
        ka, kb = self.sort_key(a), self.sort_key(b)
        return (ka > kb) - (ka < kb)

    def precedes(self, a: GroupKey, b: GroupKey) -> bool:
        """True if a must be presented strictly before b"""
        return self.sort_key(a) < self.sort_key(b)

    def sort(self, keys: Iterable[GroupKey]) -> List[GroupKey]:
        return sorted(keys, key=self.sort_key)

    def is_ordered(self, keys: Iterable[GroupKey]) -> bool:
        """True if keys are strictly increasing (no repeats) under this ordering"""
        previous = None
        for key in keys:
            if previous is not None and not self.precedes(previous, key):
                return False
            previous = key
        return True

    def as_cmp_key(self):
        """Adapter for APIs that take a cmp-style key"""
        return cmp_to_key(self.compare)


DEFAULT_ORDERING = TotalFirstOrdering()
