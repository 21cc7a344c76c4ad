import asyncio
import shlex
import sys
from pathlib import Path

import pytest

from polycheck import checker
from polycheck.checker import Checker, CheckerError, CheckerVerdict, VerdictMismatch
from polycheck.metadata import MetadataError, SolutionTag
from polycheck.run import Supervisor

pytestmark = pytest.mark.skipif(sys.platform == 'win32', reason='uses POSIX shell commands')

EXAMPLE = Path(__file__).parents[2] / 'examples' / 'sumlist'


def python_command(script):
    return '%s %s' % (shlex.quote(sys.executable), shlex.quote(str(script)))


@pytest.fixture
def files(tmp_path):
    def write(output, answer='6\n', input='3\n1 2 3\n'):
        paths = []
        for name, content in (('in.txt', input), ('out.txt', output), ('ans.txt', answer)):
            path = tmp_path / name
            path.write_text(content)
            paths.append(path)
        return paths
    return write


@pytest.fixture
def sum_checker():
    return Checker(python_command(EXAMPLE / 'checker.py'), Supervisor())


def test_correct_output(sum_checker, files):
    verdict, feedback = asyncio.run(sum_checker.evaluate(*files('6\n')))
    assert verdict is CheckerVerdict.OK
    assert feedback == ''


def test_wrong_output(sum_checker, files):
    verdict, feedback = asyncio.run(sum_checker.evaluate(*files('5\n')))
    assert verdict is CheckerVerdict.WA
    assert feedback == 'expected 6, got 5'


def test_presentation_error(sum_checker, files):
    assert asyncio.run(sum_checker.judge(*files('6 6\n'))) is CheckerVerdict.PE


def test_rejection_counts_as_presentation_error_when_expected(sum_checker, files):
    verdict = asyncio.run(sum_checker.judge(*files('5\n'), expected=CheckerVerdict.PE))
    assert verdict is CheckerVerdict.PE


def test_presentation_error_counts_as_wrong_answer_when_expected(sum_checker, files):
    verdict, feedback = asyncio.run(sum_checker.evaluate(*files('6 6\n'), expected=CheckerVerdict.WA))
    assert verdict is CheckerVerdict.WA
    assert feedback == 'expected a single integer, got 2 tokens'
    assert asyncio.run(sum_checker.check(*files('6 6\n'), expected=CheckerVerdict.WA)) is CheckerVerdict.WA


def test_accepted_output_is_ok_whatever_is_expected(sum_checker, files):
    for expected in CheckerVerdict:
        assert asyncio.run(sum_checker.judge(*files('6\n'), expected=expected)) is CheckerVerdict.OK


def test_check_mismatch(sum_checker, files):
    assert asyncio.run(sum_checker.check(*files('6\n'))) is CheckerVerdict.OK
    with pytest.raises(VerdictMismatch, match='Expected OK but got WA') as excinfo:
        asyncio.run(sum_checker.check(*files('5\n')))
    assert excinfo.value.expected is CheckerVerdict.OK
    assert excinfo.value.actual is CheckerVerdict.WA
    assert excinfo.value.feedback == 'expected 6, got 5'


def test_paths_with_spaces(sum_checker, tmp_path):
    directory = tmp_path / 'with space'
    directory.mkdir()
    paths = []
    for name, content in (('in', '1\n6\n'), ('out', '6\n'), ('ans', '6\n')):
        path = directory / name
        path.write_text(content)
        paths.append(path)
    assert asyncio.run(sum_checker.judge(*paths)) is CheckerVerdict.OK


def test_internal_failure(tmp_path, files):
    script = tmp_path / 'fail.py'
    script.write_text('import sys\nprint("cannot read answer", file=sys.stderr)\nsys.exit(3)\n')
    with pytest.raises(CheckerError, match='cannot read answer'):
        asyncio.run(Checker(python_command(script), Supervisor()).evaluate(*files('6\n')))


def test_checker_timeout(tmp_path, files):
    script = tmp_path / 'slow.py'
    script.write_text('import time\ntime.sleep(10)\n')
    supervisor = Supervisor()
    with pytest.raises(CheckerError):
        asyncio.run(Checker(python_command(script), supervisor, timeout=300).evaluate(*files('6\n')))
    assert supervisor.active_count == 0


@pytest.mark.parametrize('command', ['sh -c "exit 137"', 'sh -c "echo std::bad_alloc >&2; exit 1"'])
def test_checker_out_of_memory(files, command):
    supervisor = Supervisor()
    with pytest.raises(CheckerError, match='Memory limit exceeded'):
        asyncio.run(Checker(command, supervisor).evaluate(*files('6\n')))
    assert supervisor.active_count == 0


@pytest.mark.parametrize('tag, verdict', [
    (SolutionTag.MAIN_CORRECT, CheckerVerdict.OK),
    (SolutionTag.ACCEPTED, CheckerVerdict.OK),
    (SolutionTag.WRONG_ANSWER, CheckerVerdict.WA),
    (SolutionTag.REJECTED, CheckerVerdict.WA),
    (SolutionTag.PRESENTATION_ERROR, CheckerVerdict.PE),
    (SolutionTag.TIME_LIMIT, CheckerVerdict.OK),
])
def test_expected_checker_verdict(tag, verdict):
    assert checker.expected_checker_verdict(tag) is verdict


def test_verdict_aliases():
    assert CheckerVerdict('wa') is CheckerVerdict.WA
    with pytest.raises(ValueError):
        CheckerVerdict('TLE')


def test_self_tests(sum_checker, tmp_path):
    tests = checker.load_checker_tests(EXAMPLE / 'checker_tests.yaml')
    assert [t.verdict for t in tests] == [CheckerVerdict.OK, CheckerVerdict.WA, CheckerVerdict.PE]
    assert asyncio.run(checker.run_checker_tests(sum_checker, tests, tmp_path / 'work')) == []


def test_self_tests_report_failures(sum_checker, tmp_path):
    tests = [checker.CheckerTest(input='1\n1\n', output='2\n', answer='2\n', verdict='OK'),
             checker.CheckerTest(input='1\n1\n', output='2\n', answer='1\n', verdict='OK')]
    failures = asyncio.run(checker.run_checker_tests(sum_checker, tests, tmp_path))
    assert failures == [(2, 'Expected OK but got WA')]


def test_load_bad_self_tests(tmp_path):
    path = tmp_path / 'tests.yaml'
    path.write_text('tests:\n  - {input: "1", verdict: OK}\n')
    with pytest.raises(MetadataError):
        checker.load_checker_tests(path)
    with pytest.raises(MetadataError):
        checker.load_checker_tests(tmp_path / 'missing.yaml')
