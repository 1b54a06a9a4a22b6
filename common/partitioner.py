"""
Partition function
Routes a key to a shard using only its token, so a token's total and all of
its class facts always meet in the same reduce task.
"""

import zlib

from common.errors import ConfigurationError
from common.keys import GroupKey


def stable_token_hash(token: str) -> int:
    """
    Non-negative hash of a token that is identical in every process.
    The builtin hash() is salted per interpreter and cannot be used here.
    """
    return zlib.crc32(token.encode('utf-8')) & 0x7FFFFFFF


def partition(key: GroupKey, shard_count: int) -> int:
    """
    Pick the shard for a key

    Args:
        key: Group key; its class tag is ignored
        shard_count: Number of reduce shards

    Returns:
        Shard index in [0, shard_count)
    """
    if shard_count < 1:
        raise ConfigurationError(f"shard_count must be positive, got {shard_count}")
    return stable_token_hash(key.token) % shard_count
