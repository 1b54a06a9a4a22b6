"""
Emission stage
Turns one line of text into facts: one class fact and one Total fact per
token occurrence.
"""

from typing import Iterator, Optional, Tuple

from common.errors import RecordFormatError
from common.keys import Fact, GroupKey, Total
from common.schema import KeySchema

DEFAULT_SCHEMA = KeySchema()


def record_to_line(record) -> str:
    """
    Interpret an input record as a line of text

    Raises:
        RecordFormatError: If the record is not a str or UTF-8 bytes
    """
    if isinstance(record, str):
        return record
    if isinstance(record, (bytes, bytearray)):
        try:
            return bytes(record).decode('utf-8')
        except UnicodeDecodeError as e:
            raise RecordFormatError(f"Record is not valid UTF-8 text: {e}", record) from e
    raise RecordFormatError(f"Record is not text: {type(record).__name__}", record)


def emit_facts(record, schema: Optional[KeySchema] = None) -> Iterator[Fact]:
    """
    Emit facts for one input record

    Args:
        record: A line of text (str, or UTF-8 bytes)
        schema: Key schema deciding the class of the line

    Yields:
        For each whitespace-separated token, a class fact then a Total fact
    """
    schema = schema or DEFAULT_SCHEMA
    line = record_to_line(record)
    tag = schema.classify(line)

    for token in line.split():
        yield Fact(GroupKey(token, tag), 1.0)
        yield Fact(GroupKey(token, Total), 1.0)


def map_fn(key, value, schema: Optional[KeySchema] = None) -> Iterator[Tuple[GroupKey, float]]:
    """
    Map function in (key, value) form

    Args:
        key: Record position (unused)
        value: Text line

    Yields:
        (GroupKey, 1.0) tuples
    """
    for fact in emit_facts(value, schema):
        yield (fact.key, fact.count)
