#!/usr/bin/env python3
"""
Conditional Probability Client CLI
Provides commands for running a job over a text file and showing its output
"""

import argparse
import glob
import os
import sys

from common.errors import CondProbError
from common.keys import ResultRecord
from common.logging_utils import configure_logging
from common.ordering import DEFAULT_ORDERING
from common.schema import JobConfig
from coordinator.job_runner import JobRunner


def run_job(args):
    """Run the job over an input file and write part files to the output directory"""
    if not os.path.exists(args.input):
        print(f"Error: Input file {args.input} not found")
        return 1

    try:
        config = JobConfig.from_env().with_overrides(
            shard_count=args.num_shards,
            emission_worker_count=args.num_map_tasks,
            use_combiner=True if args.use_combiner else None,
            on_bad_record='skip' if args.skip_bad_records else None,
            work_dir=args.work_dir,
            output_path=args.output
        )
        runner = JobRunner(config, keep_intermediate=args.keep_intermediate)
        result = runner.run_file(args.input, job_id=args.job_id)
    except (CondProbError, OSError) as e:
        print(f"Error: {e}")
        return 1

    print(f"✓ Job {result.job_id} completed: {len(result.records)} records in {len(result.output_files)} part files")
    for path in result.output_files:
        print(f"  {path}")

    if args.metrics_file and result.metrics:
        result.metrics.save_to_file(args.metrics_file)
        print(f"Metrics written to {args.metrics_file}")
    return 0


def show_results(args):
    """Print every part file of an output directory, sorted totals-first by token"""
    files = sorted(glob.glob(os.path.join(args.output, 'part-*.txt')))
    if not files:
        print(f"Error: No part files in {args.output}")
        return 1

    wildcard = JobConfig.from_env().schema.wildcard
    records = []
    for path in files:
        with open(path, 'r', encoding='utf-8') as f:
            for line in f:
                try:
                    record = ResultRecord.from_line(line, wildcard)
                except ValueError as e:
                    print(f"Error: {path}: {e}")
                    return 1
                if record is not None:
                    records.append(record)

    records.sort(key=lambda r: DEFAULT_ORDERING.sort_key(r.key))
    for record in records[:args.limit] if args.limit else records:
        print(record.to_line(wildcard))
    return 0


def build_parser():
    parser = argparse.ArgumentParser(description='Conditional probability of line parity given a token')
    parser.add_argument('--log-level', default=os.getenv('CONDPROB_LOG_LEVEL', 'INFO'), help='Logging level')
    subparsers = parser.add_subparsers(dest='command')

    run_parser = subparsers.add_parser('run', help='Run a job over a text file')
    run_parser.add_argument('--input', required=True, help='Input text file, one record per line')
    run_parser.add_argument('--output', required=True, help='Output directory for part files')
    run_parser.add_argument('--job-id', help='Job ID (generated if omitted)')
    run_parser.add_argument('--num-shards', type=int, help='Number of aggregation shards')
    run_parser.add_argument('--num-map-tasks', type=int, help='Number of emission tasks')
    run_parser.add_argument('--use-combiner', action='store_true', help='Sum identical keys before the shuffle')
    run_parser.add_argument('--skip-bad-records', action='store_true', help='Skip records that are not text')
    run_parser.add_argument('--work-dir', help='Directory for intermediate data')
    run_parser.add_argument('--keep-intermediate', action='store_true', help='Keep intermediate files')
    run_parser.add_argument('--metrics-file', help='Write job metrics to this JSON file')
    run_parser.set_defaults(func=run_job)

    show_parser = subparsers.add_parser('show', help='Print the output of a job')
    show_parser.add_argument('output', help='Output directory of a job')
    show_parser.add_argument('--limit', type=int, default=0, help='Print at most this many records')
    show_parser.set_defaults(func=show_results)

    return parser


def main(argv=None):
    parser = build_parser()
    args = parser.parse_args(argv)

    if not args.command:
        parser.print_help()
        return 1

    configure_logging(args.log_level)
    return args.func(args)


if __name__ == '__main__':
    sys.exit(main())
