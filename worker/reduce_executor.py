#!/usr/bin/env python3
"""
Reduce Task Executor
Executes one shard's reduce task by reading its intermediate files, grouping
facts by key, ordering groups totals-first, streaming them through the
conditional probability aggregator, and writing the shard's output
"""

import os
import json
import time
import tempfile
import logging
from collections import defaultdict
from typing import Dict, List, Optional

from common.errors import CorruptIntermediateError
from common.keys import GroupKey, ResultRecord
from common.ordering import DEFAULT_ORDERING, TotalFirstOrdering
from common.schema import JobConfig
from worker.aggregator import ConditionalProbabilityAggregator

logger = logging.getLogger(__name__)


def output_filename(shard_id: int) -> str:
    return f"part-{shard_id}.txt"


class ReduceExecutor:
    """Executes a single reduce task for one shard"""

    def __init__(self, task_id: int, shard_id: int, intermediate_files: list,
                 output_path: str, config: JobConfig, job_id: str,
                 ordering: Optional[TotalFirstOrdering] = None):
        """
        Initialize the reduce executor

        Args:
            task_id: Unique ID for this reduce task
            shard_id: Shard this reduce task is responsible for
            intermediate_files: List of intermediate file paths to read
            output_path: Directory path where the shard output should be written
            config: Job configuration
            job_id: Unique job identifier
            ordering: Group ordering; totals-first unless a test swaps it
        """
        self.task_id = task_id
        self.shard_id = shard_id
        self.intermediate_files = intermediate_files
        self.output_path = output_path
        self.config = config
        self.job_id = job_id
        self.ordering = ordering or DEFAULT_ORDERING
        self.results: List[ResultRecord] = []

    def execute(self) -> dict:
        """
        Execute the reduce task

        Returns:
            Dictionary with 'success', 'execution_time_ms', 'error_message',
            'groups' and 'output_file' fields
        """
        start_time = time.time()
        self.results = []

        try:
            logger.info(f"Reduce task {self.task_id}: Reading and grouping intermediate data")
            key_groups = self._read_and_group_intermediate()
            logger.info(f"Reduce task {self.task_id}: Grouped {len(key_groups)} unique keys")

            # A fresh aggregator per run: its totals are only valid for this shard
            aggregator = ConditionalProbabilityAggregator(
                schema=self.config.schema,
                ordering=self.ordering,
                evict_completed=self.config.evict_completed_totals
            )
            ordered = ((key, key_groups[key]) for key in self.ordering.sort(key_groups))
            results = list(aggregator.aggregate(ordered))
            logger.info(f"Reduce task {self.task_id}: Generated {len(results)} output records")

            output_file = self._write_output(results)
            self.results = results

            execution_time = int((time.time() - start_time) * 1000)
            logger.info(f"Reduce task {self.task_id}: Completed in {execution_time}ms")

            return {
                'success': True,
                'execution_time_ms': execution_time,
                'error_message': '',
                'groups': len(results),
                'output_file': output_file
            }

        except Exception as e:
            execution_time = int((time.time() - start_time) * 1000)
            logger.error(f"Reduce task {self.task_id} failed: {type(e).__name__}: {e}")
            self._remove_output()
            return {
                'success': False,
                'execution_time_ms': execution_time,
                'error_message': f"{type(e).__name__}: {e}",
                'groups': 0,
                'output_file': None
            }

    def _read_and_group_intermediate(self) -> Dict[GroupKey, List[float]]:
        """
        Read all intermediate files and group counts by key

        Returns:
            Dictionary mapping GroupKey to list of counts

        Raises:
            CorruptIntermediateError: If an assigned file is missing or a line
                cannot be decoded
        """
        key_groups = defaultdict(list)
        files_read = 0
        lines_processed = 0

        for filepath in self.intermediate_files:
            if not os.path.exists(filepath):
                raise CorruptIntermediateError(f"Intermediate file not found: {filepath}", path=filepath)

            files_read += 1

            try:
                with open(filepath, 'r', encoding='utf-8') as f:
                    lines_processed += self._group_lines(filepath, f, key_groups)
            except UnicodeDecodeError as e:
                raise CorruptIntermediateError(f"Intermediate file is not UTF-8: {filepath}: {e}", path=filepath) from e

        logger.info(f"Reduce task {self.task_id}: Read {files_read} files, processed {lines_processed} records")
        return key_groups

    def _group_lines(self, filepath: str, lines, key_groups: Dict[GroupKey, List[float]]) -> int:
        """Add every fact in one file to key_groups; returns the number of facts read"""
        processed = 0
        for line_num, line in enumerate(lines, 1):
            line = line.strip()
            if not line:
                continue

            try:
                record = json.loads(line)
                key = GroupKey.from_json(record['key'])
                count = float(record['count'])
            except (json.JSONDecodeError, KeyError, TypeError, ValueError) as e:
                raise CorruptIntermediateError(
                    f"Malformed fact at {filepath}:{line_num}: {e}", path=filepath) from e

            key_groups[key].append(count)
            processed += 1
        return processed

    def _output_file(self) -> str:
        return os.path.join(self.output_path, output_filename(self.shard_id))

    def _write_output(self, results: List[ResultRecord]) -> str:
        """
        Write the shard's output records. The part file only appears once it
        is complete.

        Args:
            results: Records in stream order

        Returns:
            Path of the file written
        """
        os.makedirs(self.output_path, exist_ok=True)
        output_file = self._output_file()

        wildcard = self.config.schema.wildcard
        fd, tmp_path = tempfile.mkstemp(prefix=f".{output_filename(self.shard_id)}.", dir=self.output_path)
        try:
            with os.fdopen(fd, 'w', encoding='utf-8') as f:
                for record in results:
                    f.write(record.to_line(wildcard) + '\n')
            os.replace(tmp_path, output_file)
        except BaseException:
            if os.path.exists(tmp_path):
                os.remove(tmp_path)
            raise

        logger.info(f"Reduce task {self.task_id}: Wrote output to {output_file}")
        return output_file

    def _remove_output(self):
        """Drop this shard's part file so a failed run leaves nothing that looks valid"""
        output_file = self._output_file()
        try:
            os.remove(output_file)
            logger.info(f"Reduce task {self.task_id}: Removed stale output {output_file}")
        except FileNotFoundError:
            pass
