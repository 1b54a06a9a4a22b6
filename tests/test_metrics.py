"""
Unit tests for job metrics collection
"""

import json
import os

from coordinator.metrics import MetricsCollector


class TestMetricsCollector:
    """Tests for MetricsCollector"""

    def test_collects_phase_counters(self, temp_dir):
        intermediate = os.path.join(temp_dir, 'map-0-shard-0.jsonl')
        output = os.path.join(temp_dir, 'part-0.txt')
        with open(intermediate, 'w') as f:
            f.write('x' * 100)
        with open(output, 'w') as f:
            f.write('y' * 40)

        collector = MetricsCollector()
        collector.start_job('job-1', num_map_tasks=2, num_shards=1, use_combiner=True, input_size_bytes=500)
        collector.end_map_phase('job-1', [
            {'records_read': 3, 'records_skipped': 1, 'facts_emitted': 8, 'intermediate_files': {0: intermediate}},
            {'records_read': 2, 'records_skipped': 0, 'facts_emitted': 2, 'intermediate_files': {}},
        ])
        collector.start_reduce_phase('job-1', intermediate_records=4)
        collector.end_job('job-1', [{'groups': 5, 'output_file': output}])

        metrics = collector.get_metrics('job-1')
        assert metrics.records_read == 5
        assert metrics.records_skipped == 1
        assert metrics.facts_emitted == 10
        assert metrics.intermediate_size_bytes == 100
        assert metrics.output_size_bytes == 40
        assert metrics.groups_resolved == 5
        assert abs(metrics.combiner_reduction_ratio - 0.6) < 1e-9
        assert metrics.peak_rss_bytes > 0
        assert metrics.total_time_seconds >= 0
        assert metrics.map_phase_time_seconds >= 0
        assert metrics.reduce_phase_time_seconds >= 0

    def test_input_size_from_file(self, sample_input_file):
        collector = MetricsCollector()
        collector.start_job('job-2', 1, 1, False, input_path=sample_input_file)
        assert collector.get_metrics('job-2').input_size_bytes == os.path.getsize(sample_input_file)

    def test_save_to_file(self, temp_dir):
        collector = MetricsCollector()
        collector.start_job('job-3', 1, 2, False)
        path = os.path.join(temp_dir, 'metrics.json')

        collector.get_metrics('job-3').save_to_file(path)

        with open(path) as f:
            data = json.load(f)
        assert data['job_id'] == 'job-3'
        assert data['num_shards'] == 2

    def test_unknown_job_is_ignored(self):
        collector = MetricsCollector()
        collector.end_map_phase('nope', [])
        collector.start_reduce_phase('nope', 0)
        collector.end_job('nope', [])
        assert collector.get_metrics('nope') is None
