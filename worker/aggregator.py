"""
Aggregation stage
Streams one shard's ordered groups and divides each class count by its
token's total. Relies on the partition function (all of a token's groups are
in this shard) and the ordering contract (the Total group comes first).
"""

from typing import Dict, Iterable, Iterator, Optional, Tuple

from common.errors import DivideByZeroAnomaly, MissingTotalError, OrderingViolationError
from common.keys import GroupKey, ResultRecord
from common.ordering import DEFAULT_ORDERING, TotalFirstOrdering
from common.schema import KeySchema


class RunningTotal:
    """Token totals for one shard. Owned by a single aggregator, never shared."""

    def __init__(self):
        self._totals: Dict[str, float] = {}

    def record(self, token: str, total: float):
        self._totals[token] = total

    def lookup(self, token: str) -> Optional[float]:
        return self._totals.get(token)

    def evict(self, token: str):
        self._totals.pop(token, None)

    def __contains__(self, token: str) -> bool:
        return token in self._totals

    def __len__(self) -> int:
        return len(self._totals)


class ConditionalProbabilityAggregator:
    """
    Per-shard state machine.

    For the current token the aggregator is either awaiting its total or
    holds it. A Total group moves it to holding the total; a class group is
    only valid while holding the total for the same token.
    """

    def __init__(self, schema: Optional[KeySchema] = None,
                 ordering: Optional[TotalFirstOrdering] = None,
                 evict_completed: bool = True):
        self.schema = schema or KeySchema()
        self.ordering = ordering or DEFAULT_ORDERING
        self.evict_completed = evict_completed
        self.totals = RunningTotal()
        self.current_token: Optional[str] = None
        self.last_key: Optional[GroupKey] = None
        self.groups_seen = 0

    @property
    def state(self) -> str:
        if self.current_token is None:
            return 'AwaitingTotal'
        return 'HaveTotal' if self.current_token in self.totals else 'AwaitingTotal'

    def reduce(self, key: GroupKey, counts: Iterable[float]) -> Tuple[GroupKey, float]:
        """
        Resolve one group

        Args:
            key: Group key
            counts: Count contributions for the key

        Returns:
            (key, total) for a Total group, (key, P(class | token)) otherwise

        Raises:
            OrderingViolationError: The group is not strictly after the previous one
            MissingTotalError: A class group arrived with no total for its token
            DivideByZeroAnomaly: The recorded total for the token is zero
            ValueError: The class tag is not part of the key schema
        """
        if not self.schema.is_legal(key.tag):
            raise ValueError(f"Class {key.tag!r} of group {key} is not in the key schema")
        self._advance(key)
        total = float(sum(counts))

        if key.is_total:
            self.totals.record(key.token, total)
            return (key, total)

        token_total = self.totals.lookup(key.token)
        if token_total is None:
            raise MissingTotalError(f"No total recorded for token {key.token!r} before group {key}", key=key)
        if token_total == 0:
            raise DivideByZeroAnomaly(f"Total for token {key.token!r} is zero at group {key}", key=key)

        return (key, total / token_total)

    def aggregate(self, groups: Iterable[Tuple[GroupKey, Iterable[float]]]) -> Iterator[ResultRecord]:
        """Resolve a whole ordered stream, stopping at the first error"""
        for key, counts in groups:
            out_key, value = self.reduce(key, counts)
            yield ResultRecord(out_key, value)

    def _advance(self, key: GroupKey):
        """Check the ordering contract and move to the key's token"""
        previous = self.last_key
        if previous is not None and not self.ordering.precedes(previous, key):
            if previous.token == key.token and key.is_total:
                message = f"Total group {key} arrived after class group {previous}"
            else:
                message = f"Group {key} is out of order after {previous}"
            raise OrderingViolationError(message, key=key, previous_key=previous)

        self.last_key = key
        self.groups_seen += 1

        if key.token != self.current_token:
            if self.evict_completed and self.current_token is not None:
                self.totals.evict(self.current_token)
            self.current_token = key.token
