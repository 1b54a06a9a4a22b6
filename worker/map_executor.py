#!/usr/bin/env python3
"""
Map Task Executor
Executes map tasks by reading an input split, emitting facts, partitioning
them by token, and writing one intermediate file per shard
"""

import os
import json
import time
import logging
from collections import defaultdict
from typing import Dict, Iterable, List, Optional, Sequence, Tuple

from common.errors import RecordFormatError
from common.keys import GroupKey
from common.partitioner import partition
from common.schema import JobConfig
from worker.emitter import map_fn

logger = logging.getLogger(__name__)


def intermediate_filename(task_id: int, shard_id: int) -> str:
    return f"map-{task_id}-shard-{shard_id}.jsonl"


def combine_facts(pairs: Iterable[Tuple[GroupKey, float]]) -> List[Tuple[GroupKey, float]]:
    """
    Local pre-aggregation: sum counts of identical keys.
    Counts are only ever added within one (token, class) key; no division
    happens here because totals are not known until the reduce side.
    """
    sums: Dict[GroupKey, float] = {}
    for key, count in pairs:
        sums[key] = sums.get(key, 0.0) + count
    return list(sums.items())


class MapExecutor:
    """Executes a single map task"""

    def __init__(self, task_id: int, job_id: str, intermediate_dir: str, config: JobConfig,
                 input_path: Optional[str] = None, start_offset: int = 0,
                 end_offset: Optional[int] = None, records: Optional[Sequence] = None):
        """
        Initialize the map executor

        Args:
            task_id: Unique ID for this map task
            job_id: Unique job identifier
            intermediate_dir: Directory where shard files are written
            config: Job configuration (shard count, combiner, bad record policy)
            input_path: Path to input file, when reading a byte range of a file
            start_offset: Byte offset where this task should start reading
            end_offset: Byte offset where this task should stop reading (None for EOF)
            records: In-memory records to map instead of a file split
        """
        if input_path is None and records is None:
            raise ValueError("MapExecutor needs either input_path or records")

        self.task_id = task_id
        self.job_id = job_id
        self.intermediate_dir = intermediate_dir
        self.config = config
        self.input_path = input_path
        self.start_offset = start_offset
        self.end_offset = end_offset
        self.records = records
        self.records_skipped = 0

    def execute(self) -> dict:
        """
        Execute the map task

        Returns:
            Dictionary with 'success', 'execution_time_ms', 'error_message',
            record/fact counters and 'intermediate_files' (shard -> path)
        """
        start_time = time.time()
        self.records_skipped = 0

        try:
            logger.info(f"Map task {self.task_id}: Reading input split")
            key_values = self._read_input_split()

            logger.info(f"Map task {self.task_id}: Processing {len(key_values)} records")
            intermediate = self._map_and_partition(key_values)
            facts_emitted = sum(len(v) for v in intermediate.values())
            logger.info(f"Map task {self.task_id}: Generated {facts_emitted} facts")

            if self.config.use_combiner:
                intermediate = {shard: combine_facts(pairs) for shard, pairs in intermediate.items()}
                logger.info(f"Map task {self.task_id}: After combiner: "
                            f"{sum(len(v) for v in intermediate.values())} facts")

            facts_written = sum(len(v) for v in intermediate.values())
            files = self._write_intermediate_files(intermediate)

            execution_time = int((time.time() - start_time) * 1000)
            logger.info(f"Map task {self.task_id}: Completed in {execution_time}ms")

            return {
                'success': True,
                'execution_time_ms': execution_time,
                'error_message': '',
                'records_read': len(key_values),
                'records_skipped': self.records_skipped,
                'facts_emitted': facts_emitted,
                'facts_written': facts_written,
                'intermediate_files': files
            }

        except Exception as e:
            execution_time = int((time.time() - start_time) * 1000)
            logger.error(f"Map task {self.task_id} failed: {e}")
            return {
                'success': False,
                'execution_time_ms': execution_time,
                'error_message': f"{type(e).__name__}: {e}",
                'records_read': 0,
                'records_skipped': self.records_skipped,
                'facts_emitted': 0,
                'facts_written': 0,
                'intermediate_files': {}
            }

    def _read_input_split(self) -> list:
        """
        Read the assigned records

        Returns:
            List of (record_number, record) tuples. File records are raw bytes
            with only the line terminator removed, since line length decides
            the class.
        """
        if self.records is not None:
            return list(enumerate(self.records))

        key_values = []
        end_offset = self.end_offset
        if end_offset is None:
            end_offset = os.path.getsize(self.input_path)

        with open(self.input_path, 'rb') as f:
            # Align to the first line that starts inside this split
            if self.start_offset > 0:
                f.seek(self.start_offset - 1)
                f.readline()

            line_num = 0
            while f.tell() < end_offset:
                line = f.readline()
                if not line:
                    break
                key_values.append((line_num, line.rstrip(b'\r\n')))
                line_num += 1

        return key_values

    def _map_and_partition(self, key_values: list) -> Dict[int, list]:
        """Apply the map function to every record and route facts to shards"""
        intermediate = defaultdict(list)
        shard_count = self.config.shard_count

        for key, value in key_values:
            try:
                pairs = list(map_fn(key, value, self.config.schema))
            except RecordFormatError as e:
                if not self.config.skip_bad_records:
                    raise
                self.records_skipped += 1
                logger.warning(f"Map task {self.task_id}: Skipping record {key}: {e}")
                continue

            for out_key, out_value in pairs:
                intermediate[partition(out_key, shard_count)].append((out_key, out_value))

        return intermediate

    def _write_intermediate_files(self, intermediate: Dict[int, list]) -> Dict[int, str]:
        """
        Write intermediate facts to disk in JSON lines format

        Args:
            intermediate: Dictionary mapping shard_id to list of (key, count) pairs

        Returns:
            Dictionary mapping shard_id to the file written for it
        """
        os.makedirs(self.intermediate_dir, exist_ok=True)

        files = {}
        for shard_id, kv_pairs in sorted(intermediate.items()):
            if not kv_pairs:
                continue
            filename = os.path.join(self.intermediate_dir, intermediate_filename(self.task_id, shard_id))

            with open(filename, 'w', encoding='utf-8') as f:
                for key, count in kv_pairs:
                    f.write(json.dumps({'key': key.to_json(), 'count': count}) + '\n')
            files[shard_id] = filename

        return files
