"""
Unit tests for the composite key model and key schema
"""

import pytest

from common.errors import ConfigurationError
from common.keys import Category, Fact, GroupKey, ResultRecord, Total
from common.schema import JobConfig, KeySchema


class TestClassTag:
    """Tests for the Total / Category variant"""

    def test_total_is_a_single_value(self):
        assert Total == type(Total)()
        assert Total.is_total
        assert Total.label() == '*'
        assert Total.label('ALL') == 'ALL'

    def test_category_equality(self):
        assert Category(0) == Category(0)
        assert Category(0) != Category(1)
        assert Category(1) != Total
        assert not Category(1).is_total
        assert Category(1).label() == '1'

    def test_category_rejects_non_int(self):
        with pytest.raises(TypeError):
            Category('0')
        with pytest.raises(TypeError):
            Category(True)


class TestGroupKey:
    """Tests for GroupKey equality, rendering and encoding"""

    def test_equality_and_hash_use_both_fields(self):
        keys = {GroupKey('ab', Total), GroupKey('ab', Category(0)), GroupKey('ab', Total)}
        assert len(keys) == 2
        assert GroupKey('ab', Category(0)) != GroupKey('cd', Category(0))

    def test_render(self):
        assert str(GroupKey('ab', Total)) == '(ab, *)'
        assert GroupKey('ab', Category(1)).render() == '(ab, 1)'

    def test_json_encoding(self):
        assert GroupKey('ab', Total).to_json() == {'token': 'ab', 'total': True}
        assert GroupKey('ab', Category(0)).to_json() == {'token': 'ab', 'class': 0}
        assert GroupKey.from_json({'token': 'x', 'class': 1}) == GroupKey('x', Category(1))
        assert GroupKey.from_json({'token': 'x', 'total': True}) == GroupKey('x', Total)

    def test_from_json_rejects_incomplete_records(self):
        with pytest.raises(KeyError):
            GroupKey.from_json({'token': 'x'})
        with pytest.raises(TypeError):
            GroupKey.from_json({'token': 'x', 'class': 'odd'})

    def test_fact_defaults_to_one(self):
        fact = Fact(GroupKey('ab', Total))
        assert fact.count == 1.0
        assert fact.token == 'ab'
        assert fact.tag is Total


class TestResultRecord:
    """Tests for the output line format"""

    def test_to_line(self):
        assert ResultRecord(GroupKey('ab', Total), 2.0).to_line() == '(ab, *)\t2.0'
        assert ResultRecord(GroupKey('ab', Category(1)), 0.5).to_line() == '(ab, 1)\t0.5'

    def test_from_line(self):
        record = ResultRecord.from_line('(admiral, 0)\t0.25\n')
        assert record == ResultRecord(GroupKey('admiral', Category(0)), 0.25)
        assert ResultRecord.from_line('(admiral, *)\t6.0') == ResultRecord(GroupKey('admiral', Total), 6.0)

    def test_from_line_keeps_punctuation_in_tokens(self):
        record = ResultRecord.from_line('(a,b), 1)\t1.0')
        assert record.key == GroupKey('a,b)', Category(1))

    def test_blank_line_is_none(self):
        assert ResultRecord.from_line('\n') is None

    def test_malformed_lines_raise(self):
        with pytest.raises(ValueError):
            ResultRecord.from_line('ab 1 0.5')
        with pytest.raises(ValueError):
            ResultRecord.from_line('(ab, odd)\t0.5')


class TestKeySchema:
    """Tests for KeySchema and JobConfig validation"""

    def test_classify_by_line_length(self):
        schema = KeySchema()
        assert schema.classify('ab') == Category(0)
        assert schema.classify('ab cd') == Category(1)
        assert schema.classify('') == Category(0)

    def test_is_legal(self):
        schema = KeySchema()
        assert schema.is_legal(Total)
        assert schema.is_legal(Category(1))
        assert not schema.is_legal(Category(2))

    def test_wildcard_must_not_collide_with_category(self):
        with pytest.raises(ConfigurationError):
            KeySchema(wildcard='0')
        with pytest.raises(ConfigurationError):
            KeySchema(wildcard='')

    def test_job_config_validation(self):
        with pytest.raises(ConfigurationError):
            JobConfig(shard_count=0)
        with pytest.raises(ConfigurationError):
            JobConfig(emission_worker_count=-1)
        with pytest.raises(ConfigurationError):
            JobConfig(on_bad_record='ignore')

    def test_job_config_from_env(self):
        config = JobConfig.from_env({
            'CONDPROB_SHARD_COUNT': '5',
            'CONDPROB_EMISSION_WORKERS': '3',
            'CONDPROB_USE_COMBINER': 'true',
            'CONDPROB_ON_BAD_RECORD': 'skip',
        })
        assert config.shard_count == 5
        assert config.emission_worker_count == 3
        assert config.use_combiner is True
        assert config.skip_bad_records is True
        assert config.work_dir is None

    def test_job_config_from_env_rejects_garbage(self):
        with pytest.raises(ConfigurationError):
            JobConfig.from_env({'CONDPROB_SHARD_COUNT': 'many'})

    def test_with_overrides_ignores_none(self):
        config = JobConfig(shard_count=4).with_overrides(shard_count=None, emission_worker_count=1)
        assert config.shard_count == 4
        assert config.emission_worker_count == 1
