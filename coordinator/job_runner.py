"""
Job runner: wires emission, partitioning, ordering and aggregation into one pass.
Map tasks run in parallel; each shard's reduce task runs sequentially on its
own thread with its own aggregator state.
"""

import shutil
import logging
import tempfile
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Sequence

from common.errors import ShardFailedError
from common.keys import ResultRecord
from common.schema import JobConfig
from coordinator.job_manager import Job, JobManager
from coordinator.metrics import JobMetrics, MetricsCollector
from worker.map_executor import MapExecutor
from worker.reduce_executor import ReduceExecutor

logger = logging.getLogger(__name__)


def _record_size(record) -> int:
    """Size in bytes of an in-memory record"""
    if isinstance(record, str):
        return len(record.encode('utf-8', errors='replace'))
    if isinstance(record, (bytes, bytearray)):
        return len(record)
    return 0


@dataclass
class JobResult:
    """Outcome of a completed job"""
    job_id: str
    records: List[ResultRecord]
    output_files: List[str]
    shard_records: Dict[int, List[ResultRecord]] = field(default_factory=dict)
    metrics: Optional[JobMetrics] = None


class JobRunner:
    """Runs jobs in-process on thread pools"""

    def __init__(self, config: Optional[JobConfig] = None, job_manager: Optional[JobManager] = None,
                 metrics: Optional[MetricsCollector] = None, keep_intermediate: bool = False):
        self.config = config or JobConfig()
        self.job_manager = job_manager or JobManager()
        self.metrics = metrics or MetricsCollector()
        self.keep_intermediate = keep_intermediate

    def run_file(self, input_path: str, job_id: Optional[str] = None) -> JobResult:
        """Run a job over a text file, one record per line"""
        work_dir = self.config.work_dir or tempfile.mkdtemp(prefix='condprob-')
        job = self.job_manager.create_job(self.config, work_dir, input_path=input_path, job_id=job_id)
        return self.run(job)

    def run_records(self, records: Sequence, job_id: Optional[str] = None) -> JobResult:
        """Run a job over in-memory records"""
        work_dir = self.config.work_dir or tempfile.mkdtemp(prefix='condprob-')
        job = self.job_manager.create_job(self.config, work_dir, records=records, job_id=job_id)
        return self.run(job)

    def run(self, job: Job) -> JobResult:
        """
        Run all map tasks, then one reduce task per shard

        Raises:
            ShardFailedError: If any map or reduce task fails. Nothing is
                retried; a failed shard has no usable output.
        """
        config = job.config
        map_tasks = self.job_manager.generate_map_tasks(job)
        input_size = sum(_record_size(r) for r in job.records) if job.records else 0
        self.metrics.start_job(job.job_id, len(map_tasks), config.shard_count,
                               config.use_combiner, input_path=job.input_path, input_size_bytes=input_size)

        reduce_results: Dict[int, dict] = {}
        try:
            logger.info(f"Job {job.job_id}: MAP phase with {len(map_tasks)} tasks, {config.shard_count} shards")
            self.job_manager.start_map_phase(job.job_id)
            map_results = self._run_map_phase(job)
            self.metrics.end_map_phase(job.job_id, map_results.values())

            reduce_tasks = self.job_manager.generate_reduce_tasks(job)
            self.metrics.start_reduce_phase(job.job_id, sum(r['facts_written'] for r in map_results.values()))

            logger.info(f"Job {job.job_id}: REDUCE phase with {len(reduce_tasks)} shards")
            self.job_manager.start_reduce_phase(job.job_id)
            shard_records = self._run_reduce_phase(job, reduce_results)
        finally:
            self.metrics.end_job(job.job_id, reduce_results.values())
            if not self.keep_intermediate:
                shutil.rmtree(job.intermediate_dir, ignore_errors=True)

        records = [r for shard_id in sorted(shard_records) for r in shard_records[shard_id]]
        logger.info(f"Job {job.job_id}: Completed with {len(records)} output records")
        return JobResult(
            job_id=job.job_id,
            records=records,
            output_files=self.job_manager.output_files(job.job_id),
            shard_records=shard_records,
            metrics=self.metrics.get_metrics(job.job_id)
        )

    def _run_map_phase(self, job: Job) -> Dict[int, dict]:
        executors = [
            MapExecutor(
                task_id=task.task_id,
                job_id=job.job_id,
                intermediate_dir=job.intermediate_dir,
                config=job.config,
                input_path=task.input_path,
                start_offset=task.start_offset,
                end_offset=task.end_offset,
                records=task.records
            )
            for task in job.map_tasks
        ]

        with ThreadPoolExecutor(max_workers=job.config.emission_worker_count) as pool:
            results = dict(zip((e.task_id for e in executors), pool.map(lambda e: e.execute(), executors)))

        failures = {}
        for task_id, result in results.items():
            if result['success']:
                self.job_manager.mark_map_task_completed(job.job_id, task_id)
            else:
                failures[task_id] = result['error_message']
                self.job_manager.mark_task_failed(job.job_id, 'map', task_id, result['error_message'])

        if failures:
            raise ShardFailedError('map', failures, job_id=job.job_id)
        return results

    def _run_reduce_phase(self, job: Job, results: Dict[int, dict]) -> Dict[int, List[ResultRecord]]:
        """Run one reduce task per shard; fills results with each task's result dict"""
        executors = [
            ReduceExecutor(
                task_id=task.task_id,
                shard_id=task.shard_id,
                intermediate_files=task.intermediate_files,
                output_path=job.output_path,
                config=job.config,
                job_id=job.job_id
            )
            for task in job.reduce_tasks
        ]

        # One thread per shard; inside a shard groups are processed strictly in order
        with ThreadPoolExecutor(max_workers=job.config.shard_count) as pool:
            results.update(zip((e.task_id for e in executors), pool.map(lambda e: e.execute(), executors)))

        failures = {}
        shard_records = {}
        for executor in executors:
            result = results[executor.task_id]
            if result['success']:
                shard_records[executor.shard_id] = executor.results
                self.job_manager.mark_reduce_task_completed(job.job_id, executor.task_id, result['output_file'])
            else:
                failures[executor.task_id] = result['error_message']
                self.job_manager.mark_task_failed(job.job_id, 'reduce', executor.task_id, result['error_message'])

        if failures:
            raise ShardFailedError('reduce', failures, job_id=job.job_id)
        return shard_records


def run_condprob(lines: Sequence, config: Optional[JobConfig] = None) -> List[ResultRecord]:
    """
    Run the whole pipeline over in-memory lines and return the output records.
    Uses a throwaway work directory unless config.work_dir is set.
    """
    config = config or JobConfig()
    work_dir = config.work_dir or tempfile.mkdtemp(prefix='condprob-')
    try:
        runner = JobRunner(config.with_overrides(work_dir=work_dir))
        return runner.run_records(lines).records
    finally:
        if config.work_dir is None:
            shutil.rmtree(work_dir, ignore_errors=True)
