"""
Composite key model
The class field of a key is a tagged variant: either the Total wildcard or a
concrete Category. Facts, group keys and result records are built from it.
"""

from dataclasses import dataclass
from typing import Optional, Union

DEFAULT_WILDCARD = '*'


@dataclass(frozen=True)
class TotalTag:
    """Wildcard class: all classes of a token combined"""

    @property
    def is_total(self) -> bool:
        return True

    def label(self, wildcard: str = DEFAULT_WILDCARD) -> str:
        return wildcard

    def __repr__(self):
        return 'Total'


@dataclass(frozen=True)
class Category:
    """Concrete class value (0 for even-length lines, 1 for odd)"""
    value: int

    def __post_init__(self):
        # bool is an int subclass but never a legal class value
        if isinstance(self.value, bool) or not isinstance(self.value, int):
            raise TypeError(f"Category value must be an int, got {self.value!r}")

    @property
    def is_total(self) -> bool:
        return False

    def label(self, wildcard: str = DEFAULT_WILDCARD) -> str:
        return str(self.value)


Total = TotalTag()

ClassTag = Union[TotalTag, Category]


@dataclass(frozen=True)
class GroupKey:
    """(token, class) pair used for grouping; partitioning only looks at the token"""
    token: str
    tag: ClassTag

    @property
    def is_total(self) -> bool:
        return self.tag.is_total

    def render(self, wildcard: str = DEFAULT_WILDCARD) -> str:
        return f"({self.token}, {self.tag.label(wildcard)})"

    def to_json(self) -> dict:
        """Encode for intermediate files"""
        if self.tag.is_total:
            return {'token': self.token, 'total': True}
        return {'token': self.token, 'class': self.tag.value}

    @classmethod
    def from_json(cls, data: dict) -> 'GroupKey':
        """
        Decode a key written by to_json

        Raises:
            KeyError: If the token or class field is missing
            TypeError: If the class value is not an int
        """
        token = data['token']
        if not isinstance(token, str):
            raise TypeError(f"Token must be a string, got {token!r}")
        if data.get('total'):
            return cls(token, Total)
        return cls(token, Category(data['class']))

    def __str__(self):
        return self.render()


@dataclass(frozen=True)
class Fact:
    """One count contribution for a key"""
    key: GroupKey
    count: float = 1.0

    @property
    def token(self) -> str:
        return self.key.token

    @property
    def tag(self) -> ClassTag:
        return self.key.tag


@dataclass(frozen=True)
class ResultRecord:
    """
    One output record per group: the token total for a Total key,
    P(class | token) for a Category key
    """
    key: GroupKey
    value: float

    def to_line(self, wildcard: str = DEFAULT_WILDCARD) -> str:
        return f"{self.key.render(wildcard)}\t{self.value}"

    @classmethod
    def from_line(cls, line: str, wildcard: str = DEFAULT_WILDCARD) -> Optional['ResultRecord']:
        """
        Parse a line produced by to_line. Returns None for blank lines.

        Raises:
            ValueError: If the line is not in '(token, label)<TAB>value' form
        """
        line = line.rstrip('\r\n')
        if not line.strip():
            return None

        key_part, sep, value_part = line.rpartition('\t')
        if not sep or not (key_part.startswith('(') and key_part.endswith(')')):
            raise ValueError(f"Malformed result line: {line!r}")

        # tokens never contain whitespace, so ', ' only separates the two fields
        token, sep, label = key_part[1:-1].rpartition(', ')
        if not sep or not token:
            raise ValueError(f"Malformed result key: {key_part!r}")

        tag = Total if label == wildcard else Category(int(label))
        return cls(GroupKey(token, tag), float(value_part))
