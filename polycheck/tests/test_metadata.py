from pathlib import Path

import pytest

from pydantic import ValidationError
from polycheck import metadata
from polycheck.metadata import SolutionTag


@pytest.fixture
def minimal_conf():
    return {
        'name': 'sumlist',
        'time_limit': 2000,
        'memory_limit': 256,
        'solutions': [
            {'name': 'main', 'source': 'solutions/main.py', 'tag': 'MA'},
        ],
        'checker': {'source': 'checker.py'},
    }


def test_parse_minimal(minimal_conf):
    m = metadata.parse_metadata(minimal_conf)
    assert m.name == 'sumlist'
    assert m.time_limit == 2000
    assert m.memory_limit == 256
    assert m.main_solution.name == 'main'
    assert m.validator is None
    assert m.generators == []
    # A package without testsets gets a single one called tests.
    assert [t.name for t in m.testsets] == ['tests']
    assert m.testsets[0].generator_script is None


def test_default_limits(minimal_conf):
    m = metadata.parse_metadata(minimal_conf)
    assert m.limits.checker_time == 10000
    assert m.limits.checker_memory == 1024
    assert m.limits.compilation_time == 10


def test_override_limits(minimal_conf):
    minimal_conf['limits'] = {'checker_time': 500}
    m = metadata.parse_metadata(minimal_conf)
    assert m.limits.checker_time == 500
    assert m.limits.validator_time == 10000


def test_parse_does_not_modify_input(minimal_conf):
    minimal_conf['limits'] = {'checker_time': 500}
    metadata.parse_metadata(minimal_conf)
    assert minimal_conf['limits'] == {'checker_time': 500}


def test_parse_typo_fails(minimal_conf):
    minimal_conf['limits'] = {'typo': 1}
    with pytest.raises(ValidationError):
        metadata.parse_metadata(minimal_conf)
    del minimal_conf['limits']
    minimal_conf['tiem_limit'] = 1000
    with pytest.raises(ValidationError):
        metadata.parse_metadata(minimal_conf)


@pytest.mark.parametrize('key, value', [
    ('time_limit', 0),
    ('memory_limit', -1),
    ('time_limit', 'fast'),
])
def test_bad_limits_fail(minimal_conf, key, value):
    minimal_conf[key] = value
    with pytest.raises(ValidationError):
        metadata.parse_metadata(minimal_conf)


@pytest.mark.parametrize('value, tag', [
    ('MA', SolutionTag.MAIN_CORRECT),
    ('ok', SolutionTag.ACCEPTED),
    ('rj', SolutionTag.REJECTED),
    ('TL', SolutionTag.TIME_LIMIT),
    ('IL', SolutionTag.IDLENESS_LIMIT),
    ('TO', SolutionTag.IDLENESS_LIMIT),
    ('to', SolutionTag.IDLENESS_LIMIT),
    ('ML', SolutionTag.MEMORY_LIMIT),
])
def test_solution_tags(value, tag):
    assert SolutionTag(value) is tag


def test_unknown_tag_fails(minimal_conf):
    minimal_conf['solutions'].append({'name': 'weird', 'source': 'weird.py', 'tag': 'XX'})
    with pytest.raises(ValidationError):
        metadata.parse_metadata(minimal_conf)


def test_correct_tags():
    assert SolutionTag.MAIN_CORRECT.is_correct
    assert SolutionTag.ACCEPTED.is_correct
    assert not SolutionTag.WRONG_ANSWER.is_correct
    assert not SolutionTag.TIME_LIMIT.is_correct


def test_no_main_solution_fails(minimal_conf):
    minimal_conf['solutions'][0]['tag'] = 'OK'
    with pytest.raises(ValidationError, match='exactly one solution must be tagged MA'):
        metadata.parse_metadata(minimal_conf)


def test_two_main_solutions_fail(minimal_conf):
    minimal_conf['solutions'].append({'name': 'other', 'source': 'other.py', 'tag': 'MA'})
    with pytest.raises(ValidationError, match='found 2'):
        metadata.parse_metadata(minimal_conf)


def test_duplicate_names_fail(minimal_conf):
    minimal_conf['solutions'].append({'name': 'main', 'source': 'other.py', 'tag': 'OK'})
    with pytest.raises(ValidationError, match='duplicate solution names: main'):
        metadata.parse_metadata(minimal_conf)


def test_generator_script(minimal_conf):
    minimal_conf['generators'] = [{'name': 'gen', 'source': 'gen.py'}]
    minimal_conf['testsets'] = [{
        'name': 'tests',
        'groups': {'samples': [1]},
        'generator_script': [
            {'manual': 'files/sample1.txt', 'group': 'samples'},
            {'generator': 'gen', 'args': '10 1'},
        ],
    }]
    m = metadata.parse_metadata(minimal_conf)
    script = m.testsets[0].generator_script
    assert len(script) == 2
    assert str(script[0]) == 'manual files/sample1.txt'
    assert str(script[1]) == 'gen 10 1'
    assert m.testsets[0].groups == {'samples': [1]}


@pytest.mark.parametrize('command', [
    {},
    {'generator': 'gen', 'manual': 'files/a.txt'},
    {'manual': 'files/a.txt', 'args': '1 2'},
])
def test_bad_script_command_fails(command):
    with pytest.raises(ValidationError):
        metadata.ScriptCommand.model_validate(command)


def test_load_missing(tmp_path):
    with pytest.raises(metadata.MetadataError, match='No problem.yaml'):
        metadata.load_metadata(tmp_path)


def test_load_broken_yaml(tmp_path):
    (tmp_path / 'problem.yaml').write_text('name: [unclosed\n')
    with pytest.raises(metadata.MetadataError, match='Failed to parse'):
        metadata.load_metadata(tmp_path)


def test_load_not_a_mapping(tmp_path):
    (tmp_path / 'problem.yaml').write_text('- just\n- a list\n')
    with pytest.raises(metadata.MetadataError, match='must contain a mapping'):
        metadata.load_metadata(tmp_path)


def test_load_invalid(tmp_path):
    (tmp_path / 'problem.yaml').write_text('name: x\ntime_limit: 1000\n')
    with pytest.raises(metadata.MetadataError) as excinfo:
        metadata.load_metadata(tmp_path)
    assert 'memory_limit' in str(excinfo.value)
    assert 'solutions' in str(excinfo.value)


def test_load_example():
    m = metadata.load_metadata(Path(__file__).parents[2] / 'examples' / 'sumlist')
    assert m.name == 'sumlist'
    assert m.main_solution.name == 'main'
    assert {s.tag for s in m.solutions} >= {SolutionTag.WRONG_ANSWER, SolutionTag.TIME_LIMIT}
