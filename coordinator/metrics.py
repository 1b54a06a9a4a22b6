"""
Performance metrics collection for conditional probability jobs.
"""

import os
import time
import json
import psutil
from dataclasses import dataclass, asdict
from typing import Dict, Iterable, Optional


@dataclass
class JobMetrics:
    """Metrics for a single job execution."""

    job_id: str
    start_time: float
    end_time: float
    map_phase_start: float
    map_phase_end: float
    reduce_phase_start: float
    reduce_phase_end: float
    num_map_tasks: int
    num_shards: int
    use_combiner: bool
    input_size_bytes: int
    intermediate_size_bytes: int = 0
    output_size_bytes: int = 0
    records_read: int = 0
    records_skipped: int = 0
    facts_emitted: int = 0
    groups_resolved: int = 0
    peak_rss_bytes: int = 0
    combiner_reduction_ratio: float = 0.0

    @property
    def total_time_seconds(self) -> float:
        """Total job execution time in seconds."""
        return self.end_time - self.start_time

    @property
    def map_phase_time_seconds(self) -> float:
        """Map phase execution time in seconds."""
        return self.map_phase_end - self.map_phase_start

    @property
    def reduce_phase_time_seconds(self) -> float:
        """Reduce phase execution time in seconds."""
        return self.reduce_phase_end - self.reduce_phase_start

    def to_dict(self) -> dict:
        """Convert metrics to dictionary."""
        return asdict(self)

    def save_to_file(self, filepath: str):
        """Save metrics to JSON file."""
        with open(filepath, 'w') as f:
            json.dump(self.to_dict(), f, indent=2)


def _total_size(paths: Iterable[str]) -> int:
    return sum(os.path.getsize(p) for p in paths if p and os.path.exists(p))


class MetricsCollector:
    """Collects and manages metrics for jobs."""

    def __init__(self):
        self.job_metrics: Dict[str, JobMetrics] = {}
        self.process = psutil.Process()

    def _sample_memory(self, job_id: str):
        rss = self.process.memory_info().rss
        metrics = self.job_metrics[job_id]
        metrics.peak_rss_bytes = max(metrics.peak_rss_bytes, rss)

    def start_job(self, job_id: str, num_map_tasks: int, num_shards: int,
                  use_combiner: bool, input_path: Optional[str] = None, input_size_bytes: int = 0):
        """Initialize metrics tracking for a new job."""
        if input_path is not None and os.path.exists(input_path):
            input_size_bytes = os.path.getsize(input_path)

        now = time.time()
        self.job_metrics[job_id] = JobMetrics(
            job_id=job_id,
            start_time=now,
            end_time=0,
            map_phase_start=now,
            map_phase_end=0,
            reduce_phase_start=0,
            reduce_phase_end=0,
            num_map_tasks=num_map_tasks,
            num_shards=num_shards,
            use_combiner=use_combiner,
            input_size_bytes=input_size_bytes
        )
        self._sample_memory(job_id)

    def end_map_phase(self, job_id: str, map_results: Iterable[dict]):
        """Mark the end of the map phase and add up the map task counters."""
        if job_id not in self.job_metrics:
            return
        metrics = self.job_metrics[job_id]
        metrics.map_phase_end = time.time()

        intermediate_files = []
        for result in map_results:
            metrics.records_read += result.get('records_read', 0)
            metrics.records_skipped += result.get('records_skipped', 0)
            metrics.facts_emitted += result.get('facts_emitted', 0)
            intermediate_files.extend(result.get('intermediate_files', {}).values())
        metrics.intermediate_size_bytes = _total_size(intermediate_files)
        self._sample_memory(job_id)

    def start_reduce_phase(self, job_id: str, intermediate_records: int):
        """
        Mark the start of the reduce phase.
        intermediate_records is the number of facts actually written after
        the optional combiner; the ratio is 0.0 without a combiner.
        """
        if job_id not in self.job_metrics:
            return
        metrics = self.job_metrics[job_id]
        metrics.reduce_phase_start = time.time()
        if metrics.facts_emitted > 0:
            metrics.combiner_reduction_ratio = 1.0 - (intermediate_records / metrics.facts_emitted)

    def end_job(self, job_id: str, reduce_results: Iterable[dict]):
        """Mark job completion and calculate output size."""
        if job_id not in self.job_metrics:
            return
        metrics = self.job_metrics[job_id]
        metrics.reduce_phase_end = time.time()
        metrics.end_time = metrics.reduce_phase_end

        output_files = []
        for result in reduce_results:
            metrics.groups_resolved += result.get('groups', 0)
            output_files.append(result.get('output_file'))
        metrics.output_size_bytes = _total_size(output_files)
        self._sample_memory(job_id)

    def get_metrics(self, job_id: str) -> Optional[JobMetrics]:
        """Retrieve metrics for a specific job."""
        return self.job_metrics.get(job_id)
