#!/usr/bin/env python3
"""
Job Manager for the conditional probability job
Handles job state management, task generation, and progress tracking
"""

import os
import glob
import time
import uuid
import threading
from enum import Enum
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Sequence

from common.schema import JobConfig
from worker.map_executor import intermediate_filename
from worker.reduce_executor import output_filename


class JobStatus(Enum):
    """Status of a job"""
    PENDING = "pending"
    MAP_PHASE = "map_phase"
    SHUFFLE_PHASE = "shuffle_phase"
    REDUCE_PHASE = "reduce_phase"
    COMPLETED = "completed"
    FAILED = "failed"


class TaskStatus(Enum):
    """Status of individual map or reduce tasks"""
    PENDING = "pending"
    COMPLETED = "completed"
    FAILED = "failed"


@dataclass
class MapTask:
    """Represents a single map task: a byte range of a file or a slice of records"""
    task_id: int
    input_path: Optional[str] = None
    start_offset: int = 0
    end_offset: Optional[int] = None
    records: Optional[Sequence] = None
    status: TaskStatus = TaskStatus.PENDING
    error_message: str = ''


@dataclass
class ReduceTask:
    """Represents a single reduce task; one per shard"""
    task_id: int
    shard_id: int
    intermediate_files: List[str] = field(default_factory=list)
    status: TaskStatus = TaskStatus.PENDING
    output_file: Optional[str] = None
    error_message: str = ''


@dataclass
class Job:
    """Represents a complete job"""
    job_id: str
    config: JobConfig
    intermediate_dir: str
    output_path: str
    input_path: Optional[str] = None
    records: Optional[Sequence] = None
    status: JobStatus = JobStatus.PENDING
    map_tasks: List[MapTask] = field(default_factory=list)
    reduce_tasks: List[ReduceTask] = field(default_factory=list)
    start_time: float = 0.0
    end_time: float = 0.0
    error_message: str = ''


class JobManager:
    """Manages jobs and their lifecycle"""

    def __init__(self):
        self.jobs: Dict[str, Job] = {}
        self.lock = threading.Lock()

    def create_job(self, config: JobConfig, work_dir: str, input_path: Optional[str] = None,
                   records: Optional[Sequence] = None, job_id: Optional[str] = None) -> Job:
        """
        Create a new job

        Args:
            config: Job configuration
            work_dir: Directory holding this job's intermediate and default output data
            input_path: Input text file, one record per line
            records: In-memory records, used when no input file is given
            job_id: Optional job id; generated when omitted
        """
        if input_path is None and records is None:
            raise ValueError("A job needs an input file or in-memory records")
        if input_path is not None and not os.path.exists(input_path):
            raise FileNotFoundError(f"Input file not found: {input_path}")

        job_id = job_id or uuid.uuid4().hex[:12]
        with self.lock:
            if job_id in self.jobs:
                raise ValueError(f"Job {job_id} already exists")
            job = Job(
                job_id=job_id,
                config=config,
                intermediate_dir=os.path.join(work_dir, 'intermediate', job_id),
                output_path=config.output_path or os.path.join(work_dir, 'output', job_id),
                input_path=input_path,
                records=records,
                start_time=time.time()
            )
            self.jobs[job.job_id] = job
            return job

    def get_job(self, job_id: str) -> Optional[Job]:
        with self.lock:
            return self.jobs.get(job_id)

    def generate_map_tasks(self, job: Job) -> List[MapTask]:
        """Split the input into one map task per emission worker"""
        num_map_tasks = job.config.emission_worker_count

        map_tasks = []
        if job.input_path is not None:
            file_size = os.path.getsize(job.input_path)
            chunk_size = file_size // num_map_tasks
            for i in range(num_map_tasks):
                start = i * chunk_size
                end = file_size if i == num_map_tasks - 1 else (i + 1) * chunk_size
                map_tasks.append(MapTask(task_id=i, input_path=job.input_path,
                                         start_offset=start, end_offset=end))
        else:
            records = list(job.records)
            chunk_size = -(-len(records) // num_map_tasks) if records else 0
            for i in range(num_map_tasks):
                chunk = records[i * chunk_size:(i + 1) * chunk_size] if chunk_size else []
                map_tasks.append(MapTask(task_id=i, records=chunk))

        job.map_tasks = map_tasks
        return map_tasks

    def generate_reduce_tasks(self, job: Job) -> List[ReduceTask]:
        """Create one reduce task per shard with its intermediate file assignments"""
        reduce_tasks = []
        for shard_id in range(job.config.shard_count):
            pattern = os.path.join(job.intermediate_dir, intermediate_filename('*', shard_id))
            intermediate_files = sorted(glob.glob(pattern))

            reduce_tasks.append(ReduceTask(
                task_id=shard_id,
                shard_id=shard_id,
                intermediate_files=intermediate_files
            ))

        job.reduce_tasks = reduce_tasks
        return reduce_tasks

    def start_map_phase(self, job_id: str):
        with self.lock:
            job = self.jobs[job_id]
            if job.status != JobStatus.PENDING:
                raise ValueError(f"Cannot start MAP phase from {job.status.value}")
            job.status = JobStatus.MAP_PHASE

    def start_reduce_phase(self, job_id: str):
        with self.lock:
            job = self.jobs[job_id]
            if job.status != JobStatus.SHUFFLE_PHASE:
                raise ValueError(f"Cannot start REDUCE phase from {job.status.value}")
            job.status = JobStatus.REDUCE_PHASE

    def mark_map_task_completed(self, job_id: str, task_id: int):
        """Mark map task as completed"""
        with self.lock:
            job = self.jobs.get(job_id)
            if job and task_id < len(job.map_tasks):
                job.map_tasks[task_id].status = TaskStatus.COMPLETED

                # Check if all map tasks completed
                if all(t.status == TaskStatus.COMPLETED for t in job.map_tasks):
                    job.status = JobStatus.SHUFFLE_PHASE

    def mark_reduce_task_completed(self, job_id: str, task_id: int, output_file: Optional[str] = None):
        """Mark reduce task as completed"""
        with self.lock:
            job = self.jobs.get(job_id)
            if job and task_id < len(job.reduce_tasks):
                job.reduce_tasks[task_id].status = TaskStatus.COMPLETED
                job.reduce_tasks[task_id].output_file = output_file

                # Check if all reduce tasks completed
                if all(t.status == TaskStatus.COMPLETED for t in job.reduce_tasks):
                    job.status = JobStatus.COMPLETED
                    job.end_time = time.time()

    def mark_task_failed(self, job_id: str, task_type: str, task_id: int, error_message: str):
        """Mark a map or reduce task as failed; the job fails with it"""
        with self.lock:
            job = self.jobs.get(job_id)
            if not job:
                return
            tasks = job.map_tasks if task_type == 'map' else job.reduce_tasks
            if task_id < len(tasks):
                tasks[task_id].status = TaskStatus.FAILED
                tasks[task_id].error_message = error_message
            job.status = JobStatus.FAILED
            job.error_message = error_message
            job.end_time = time.time()

    def output_files(self, job_id: str) -> List[str]:
        """Output part files of a completed job, in shard order"""
        job = self.get_job(job_id)
        if not job:
            return []
        return [os.path.join(job.output_path, output_filename(t.shard_id))
                for t in job.reduce_tasks if t.status == TaskStatus.COMPLETED]

    def get_job_status(self, job_id: str) -> Optional[Dict]:
        """Get current job status with progress"""
        with self.lock:
            job = self.jobs.get(job_id)
            if not job:
                return None

            total_tasks = len(job.map_tasks) + len(job.reduce_tasks)
            map_completed = sum(1 for t in job.map_tasks if t.status == TaskStatus.COMPLETED)
            reduce_completed = sum(1 for t in job.reduce_tasks if t.status == TaskStatus.COMPLETED)

            progress = int(((map_completed + reduce_completed) / total_tasks * 100)) if total_tasks > 0 else 0

            return {
                'status': job.status.value,
                'progress': progress,
                'map_completed': map_completed,
                'map_total': len(job.map_tasks),
                'reduce_completed': reduce_completed,
                'reduce_total': len(job.reduce_tasks),
                'error_message': job.error_message
            }
