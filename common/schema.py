"""
Key schema and job configuration
Both are plain values built once at startup and passed to the emission and
aggregation stages.
"""

import os
from dataclasses import dataclass, field, replace
from typing import Optional, Tuple

from common.errors import ConfigurationError
from common.keys import Category, ClassTag, DEFAULT_WILDCARD

BAD_RECORD_POLICIES = ('fail', 'skip')


@dataclass(frozen=True)
class KeySchema:
    """Shape of the grouping key: a token field and a single class field"""
    token_field: str = 'Token'
    class_field: str = 'EvenOrOdd'
    wildcard: str = DEFAULT_WILDCARD
    categories: Tuple[int, ...] = (0, 1)

    def __post_init__(self):
        if not self.categories:
            raise ConfigurationError("Key schema needs at least one category")
        if not self.wildcard or any(ch.isspace() for ch in self.wildcard):
            raise ConfigurationError(f"Wildcard symbol must be non-empty without whitespace: {self.wildcard!r}")
        if self.wildcard in {str(c) for c in self.categories}:
            raise ConfigurationError(f"Wildcard symbol {self.wildcard!r} collides with a category label")

    def classify(self, line: str) -> Category:
        """Class of a line: its length modulo the number of categories"""
        return Category(self.categories[len(line) % len(self.categories)])

    def is_legal(self, tag: ClassTag) -> bool:
        return tag.is_total or tag.value in self.categories


@dataclass
class JobConfig:
    """Recognized options for one job run"""
    shard_count: int = 2
    emission_worker_count: int = 4
    use_combiner: bool = False
    on_bad_record: str = 'fail'
    evict_completed_totals: bool = True
    work_dir: Optional[str] = None
    output_path: Optional[str] = None
    schema: KeySchema = field(default_factory=KeySchema)

    def __post_init__(self):
        if not isinstance(self.shard_count, int) or self.shard_count < 1:
            raise ConfigurationError(f"shard_count must be a positive integer, got {self.shard_count!r}")
        if not isinstance(self.emission_worker_count, int) or self.emission_worker_count < 1:
            raise ConfigurationError(
                f"emission_worker_count must be a positive integer, got {self.emission_worker_count!r}")
        if self.on_bad_record not in BAD_RECORD_POLICIES:
            raise ConfigurationError(
                f"on_bad_record must be one of {BAD_RECORD_POLICIES}, got {self.on_bad_record!r}")

    @property
    def skip_bad_records(self) -> bool:
        return self.on_bad_record == 'skip'

    def with_overrides(self, **overrides) -> 'JobConfig':
        """Copy with the given non-None fields replaced"""
        changes = {k: v for k, v in overrides.items() if v is not None}
        return replace(self, **changes)

    @classmethod
    def from_env(cls, environ=None) -> 'JobConfig':
        """Build a config from CONDPROB_* environment variables"""
        env = os.environ if environ is None else environ
        try:
            return cls(
                shard_count=int(env.get('CONDPROB_SHARD_COUNT', '2')),
                emission_worker_count=int(env.get('CONDPROB_EMISSION_WORKERS', '4')),
                use_combiner=env.get('CONDPROB_USE_COMBINER', '').lower() in ('1', 'true', 'yes'),
                on_bad_record=env.get('CONDPROB_ON_BAD_RECORD', 'fail'),
                work_dir=env.get('CONDPROB_WORK_DIR') or None,
            )
        except ValueError as e:
            if isinstance(e, ConfigurationError):
                raise
            raise ConfigurationError(f"Invalid numeric setting in environment: {e}") from e
