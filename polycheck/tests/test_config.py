import pytest
from pathlib import Path

from polycheck import config


def config_paths_mock():
    return [Path(__file__).parent / 'config1',
            Path(__file__).parent / 'config2']


def test_load_basic_config(monkeypatch):
    monkeypatch.setattr(config, '__config_file_paths', config_paths_mock)

    conf = config.load_config('limits.yaml')
    assert conf == {'checker_time': 5000, 'checker_memory': 1024, 'compilation_time': 30}


def test_load_updated_language(monkeypatch):
    monkeypatch.setattr(config, '__config_file_paths', config_paths_mock)

    conf = config.load_config('languages.yaml')
    assert conf['cpp']['compile'] == 'clang++ -O2 -o {binary} {files}'
    assert conf['cpp']['run'] == '{binary}'


def test_priority_dirs(monkeypatch, tmp_path):
    monkeypatch.setattr(config, '__config_file_paths', config_paths_mock)
    (tmp_path / 'limits.yaml').write_text('checker_memory: 256\n')

    conf = config.load_config('limits.yaml', priority_dirs=[tmp_path])
    assert conf['checker_memory'] == 256
    assert conf['checker_time'] == 5000


def test_load_missing_config(monkeypatch):
    monkeypatch.setattr(config, '__config_file_paths', config_paths_mock)

    with pytest.raises(config.ConfigError):
        config.load_config('non_existent_file')


def test_load_broken_config(monkeypatch):
    monkeypatch.setattr(config, '__config_file_paths', config_paths_mock)

    with pytest.raises(config.ConfigError):
        config.load_config('broken.yaml')


def test_packaged_languages():
    conf = config.load_config('languages.yaml')
    assert {'cpp', 'java', 'python3'} <= set(conf)


def test_merge():
    update_dict = config.__dict__['__merge']

    dict1 = {'a': 1, 'b': {'sub1': 1, 'sub2': False}, 'c': 3}
    dict2 = {'b': {'sub3': 'new', 'sub2': 47}}
    dict3 = {'a': 0, 'b': 12}

    update_dict(dict1, dict2)
    assert dict1 == {'a': 1, 'b': {'sub1': 1, 'sub2': 47, 'sub3': 'new'}, 'c': 3}

    update_dict(dict1, dict3)
    assert dict1 == {'a': 0, 'b': 12, 'c': 3}


def test_layer_must_be_mapping(monkeypatch, tmp_path):
    monkeypatch.setattr(config, '__config_file_paths', config_paths_mock)
    (tmp_path / 'limits.yaml').write_text('- checker_time\n- 5000\n')

    with pytest.raises(config.ConfigError, match='expected a mapping'):
        config.load_config('limits.yaml', priority_dirs=[tmp_path])


def test_empty_layer_changes_nothing(monkeypatch, tmp_path):
    monkeypatch.setattr(config, '__config_file_paths', config_paths_mock)
    (tmp_path / 'limits.yaml').write_text('')

    conf = config.load_config('limits.yaml', priority_dirs=[tmp_path])
    assert conf == {'checker_time': 5000, 'checker_memory': 1024, 'compilation_time': 30}


def test_default_limits():
    limits = config.default_limits()
    assert limits['checker_time'] == 10000
    assert limits['compilation_time'] == 10


def test_default_limits_must_be_mapping(monkeypatch, tmp_path):
    (tmp_path / 'problem.yaml').write_text('limits: 5\n')
    monkeypatch.setattr(config, '__config_file_paths', lambda: [tmp_path])

    with pytest.raises(config.ConfigError, match='limits must be a mapping'):
        config.default_limits()
