"""
Error taxonomy for the conditional probability job.
Every condition is surfaced to the orchestrating caller; nothing here is retried.
"""

from typing import Dict, Optional


class CondProbError(Exception):
    """Base class for all job errors"""


class ConfigurationError(CondProbError, ValueError):
    """Invalid job configuration or key schema"""


class RecordFormatError(CondProbError):
    """An input record cannot be interpreted as a line of text"""

    def __init__(self, message: str, record=None):
        super().__init__(message)
        self.record = record


class OrderingViolationError(CondProbError):
    """A group arrived out of position in a shard's ordered stream"""

    def __init__(self, message: str, key=None, previous_key=None):
        super().__init__(message)
        self.key = key
        self.previous_key = previous_key


class MissingTotalError(OrderingViolationError):
    """A class group arrived for a token whose total was never recorded in this shard"""


class DivideByZeroAnomaly(CondProbError):
    """A token's recorded total is zero although a class group exists for it"""

    def __init__(self, message: str, key=None):
        super().__init__(message)
        self.key = key


class ShardFailedError(CondProbError):
    """One or more map or reduce tasks failed; their output must be discarded"""

    def __init__(self, phase: str, failures: Dict[int, str], job_id: Optional[str] = None):
        self.phase = phase
        self.failures = dict(failures)
        self.job_id = job_id
        details = '; '.join(f"task {task_id}: {msg}" for task_id, msg in sorted(self.failures.items()))
        super().__init__(f"{phase} phase failed for job {job_id}: {details}")


class CorruptIntermediateError(CondProbError):
    """An intermediate file assigned to a shard is missing or holds an unreadable fact"""

    def __init__(self, message: str, path: Optional[str] = None):
        super().__init__(message)
        self.path = path
