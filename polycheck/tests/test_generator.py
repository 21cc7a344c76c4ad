import asyncio
import shlex
import sys
from pathlib import Path

import pytest

from polycheck import generator
from polycheck.generator import GeneratorError
from polycheck.metadata import ScriptCommand, TestsetConfig
from polycheck.run import Supervisor

pytestmark = pytest.mark.skipif(sys.platform == 'win32', reason='uses POSIX shell commands')

EXAMPLE = Path(__file__).parents[2] / 'examples' / 'sumlist'


@pytest.fixture
def problem(tmp_path):
    (tmp_path / 'files').mkdir()
    (tmp_path / 'files' / 'sample.txt').write_text('2\n1 1\n')
    return tmp_path


@pytest.fixture
def commands():
    return {'random': '%s %s' % (shlex.quote(sys.executable),
                                 shlex.quote(str(EXAMPLE / 'generators' / 'random_list.py')))}


def make_testset(*script):
    return TestsetConfig(name='tests', generator_script=[ScriptCommand(**command) for command in script])


def test_generate(problem, commands):
    testset = make_testset({'manual': 'files/sample.txt'},
                           {'generator': 'random', 'args': '5 1'},
                           {'generator': 'random', 'args': '5 2'},
                           {'generator': 'random', 'args': '5 1'})
    written = asyncio.run(generator.generate_testset(Supervisor(), testset, commands, problem))
    directory = problem / 'testsets' / 'tests'
    assert written == [directory / f'test{i}.txt' for i in range(1, 5)]
    assert written[0].read_text() == '2\n1 1\n'
    lines = written[1].read_text().splitlines()
    assert lines[0] == '5'
    assert len(lines[1].split()) == 5
    # Generators are deterministic in their arguments.
    assert written[1].read_text() == written[3].read_text()
    assert written[1].read_text() != written[2].read_text()


def test_empty_script(problem, commands):
    assert asyncio.run(generator.generate_testset(Supervisor(), make_testset(), commands, problem)) == []


def test_unknown_generator(problem, commands):
    testset = make_testset({'generator': 'gen', 'args': '1'})
    with pytest.raises(GeneratorError, match='Available generators: random'):
        asyncio.run(generator.generate_testset(Supervisor(), testset, commands, problem))


def test_missing_manual_test(problem, commands):
    with pytest.raises(GeneratorError, match='files/missing.txt'):
        generator.validate_script([ScriptCommand(manual='files/missing.txt')], list(commands), problem)


def test_failing_generator(problem):
    testset = make_testset({'generator': 'broken', 'args': '7'})
    supervisor = Supervisor()
    with pytest.raises(GeneratorError, match='broken 7'):
        asyncio.run(generator.generate_testset(supervisor, testset, {'broken': 'sh -c "exit 1"'}, problem))
    assert supervisor.active_count == 0


def test_generator_timeout(problem):
    testset = make_testset({'generator': 'slow'})
    with pytest.raises(GeneratorError):
        asyncio.run(generator.generate_testset(Supervisor(), testset, {'slow': 'sleep 10'}, problem,
                                               timeout=300))
