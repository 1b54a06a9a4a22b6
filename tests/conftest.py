"""
Pytest configuration and shared fixtures
"""

import pytest
import os
import tempfile
import shutil

from common.schema import JobConfig


@pytest.fixture
def temp_dir():
    """Create temporary directory for test files"""
    dirpath = tempfile.mkdtemp()
    yield dirpath
    shutil.rmtree(dirpath)


@pytest.fixture
def sample_text():
    """
    Sample text for testing. Line lengths: 44, 24, 33, 38, 24, so only the
    third line is odd.
    """
    return """The quick brown fox jumps over the lazy dog.
The dog was really lazy.
The fox was very quick and brown.
Quick brown foxes are amazing animals.
Lazy dogs sleep all day."""


@pytest.fixture
def sample_input_file(temp_dir, sample_text):
    """Create a sample input file for testing"""
    filepath = os.path.join(temp_dir, 'input.txt')
    with open(filepath, 'w') as f:
        f.write(sample_text)
    return filepath


@pytest.fixture
def job_config(temp_dir):
    """Small job configuration writing under the temp directory"""
    return JobConfig(shard_count=3, emission_worker_count=2, work_dir=temp_dir)
