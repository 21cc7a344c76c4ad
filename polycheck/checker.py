"""
Invoking the checker of a problem package.

The checker is a trusted program following the testlib conventions: it is
run as `checker <input> <output> <answer>` and reports its verdict through
its exit code (0 OK, 1 wrong answer, 2 presentation error, 3 internal
failure).  It runs with the tooling budget of the problem, not with the
limits of the solution being judged.
"""
import logging
from enum import StrEnum
from pathlib import Path

import pydantic
import yaml
from pydantic import BaseModel, ConfigDict

from .metadata import MetadataError, SolutionTag
from .run import ExecutionOptions, ExecutionStatus, Supervisor
from .run.errors import ExecutionError

log = logging.getLogger(__name__)

EXIT_PRESENTATION_ERROR = 2
EXIT_FAIL = 3


class CheckerVerdict(StrEnum):
    OK = 'OK'
    WA = 'WA'
    PE = 'PE'

    @classmethod
    def _missing_(cls, value):
        if isinstance(value, str):
            for member in cls:
                if member.value == value.upper():
                    return member
        return None


class CheckerError(Exception):
    """The checker itself misbehaved: crashed, reported an internal
    failure, timed out or ran out of memory."""
    pass


class VerdictMismatch(Exception):
    """The checker gave another verdict than the one expected."""

    def __init__(self, expected, actual, feedback=''):
        super().__init__(f'Expected {expected} but got {actual}')
        self.expected = expected
        self.actual = actual
        self.feedback = feedback


def expected_checker_verdict(tag: SolutionTag) -> CheckerVerdict:
    """The checker verdict that a solution with a given tag is after."""
    match tag:
        case SolutionTag.PRESENTATION_ERROR:
            return CheckerVerdict.PE
        case SolutionTag.WRONG_ANSWER | SolutionTag.REJECTED:
            return CheckerVerdict.WA
    return CheckerVerdict.OK


class Checker(object):
    def __init__(self, command: str, supervisor: Supervisor,
                 timeout: int = 10000, memory_limit: int = 1024) -> None:
        """
        Args:
            command (str): command line running the checker
            supervisor (Supervisor): supervisor to run the checker with
            timeout (int): time budget of one checker run, in ms
            memory_limit (int): memory budget of one checker run, in MB
        """
        self.command = command
        self.supervisor = supervisor
        self.options = ExecutionOptions(timeout=timeout, memory_limit=memory_limit, silent=True,
                                        handles=frozenset([ExecutionStatus.NON_ZERO_EXIT]))

    async def evaluate(self, infile, outfile, ansfile,
                       expected: CheckerVerdict = CheckerVerdict.OK) -> tuple[CheckerVerdict, str]:
        """Run the checker on one output.

        Returns:
            pair (verdict, feedback), feedback being whatever the
            checker wrote to stderr.

        Raises:
            CheckerError if the checker did not come to a verdict.
        """
        quote = self.supervisor.builder.quote_path
        cmd = '%s %s %s %s' % (self.command, quote(str(infile)), quote(str(outfile)), quote(str(ansfile)))
        try:
            result = await self.supervisor.execute(cmd, self.options)
        except ExecutionError as err:
            self.supervisor.cleanup()
            raise CheckerError(f'Checker failed: {err}') from err

        feedback = result.stderr.strip()
        if result.success:
            return (CheckerVerdict.OK, feedback)
        if result.exit_code == EXIT_FAIL:
            self.supervisor.cleanup()
            raise CheckerError(f'Checker reported an internal failure: {feedback}')

        log.debug('checker rejected %s (exit code %d): %s', outfile, result.exit_code, feedback)
        # A rejection satisfies whichever rejection is expected; only
        # against an expected OK does the exit code tell PE from WA.
        if expected is not CheckerVerdict.OK:
            return (expected, feedback)
        if result.exit_code == EXIT_PRESENTATION_ERROR:
            return (CheckerVerdict.PE, feedback)
        return (CheckerVerdict.WA, feedback)

    async def judge(self, infile, outfile, ansfile,
                    expected: CheckerVerdict = CheckerVerdict.OK) -> CheckerVerdict:
        verdict, _ = await self.evaluate(infile, outfile, ansfile, expected)
        return verdict

    async def check(self, infile, outfile, ansfile,
                    expected: CheckerVerdict = CheckerVerdict.OK) -> CheckerVerdict:
        """Like judge(), but raises VerdictMismatch unless the verdict is
        the expected one."""
        verdict, feedback = await self.evaluate(infile, outfile, ansfile, expected)
        if verdict is not expected:
            raise VerdictMismatch(expected, verdict, feedback)
        return verdict


class CheckerTest(BaseModel):
    input: str
    output: str
    answer: str
    verdict: CheckerVerdict

    model_config = ConfigDict(extra='forbid')


class CheckerTests(BaseModel):
    tests: list[CheckerTest]

    model_config = ConfigDict(extra='forbid')


def load_checker_tests(path: Path) -> list[CheckerTest]:
    """Load checker self-tests from a YAML file of the form

        tests:
          - {input: ..., output: ..., answer: ..., verdict: OK|WA|PE}
    """
    try:
        with open(path) as f:
            data = yaml.safe_load(f)
        return CheckerTests.model_validate(data).tests
    except (OSError, yaml.YAMLError, pydantic.ValidationError) as e:
        raise MetadataError(f'Failed to load checker tests from {path}: {e}')


async def run_checker_tests(checker: Checker, tests: list[CheckerTest],
                            workdir: Path) -> list[tuple[int, str]]:
    """Run the checker on each of its self-tests.

    Returns:
        list of (1-based test index, message), one per test where the
        checker did not give the expected verdict.
    """
    workdir = Path(workdir)
    workdir.mkdir(parents=True, exist_ok=True)
    failures = []
    for index, test in enumerate(tests, start=1):
        files = []
        for suffix, content in (('in', test.input), ('out', test.output), ('ans', test.answer)):
            path = workdir / f'checker_test{index}.{suffix}'
            path.write_text(content)
            files.append(path)
        try:
            await checker.check(*files, expected=test.verdict)
        except VerdictMismatch as mismatch:
            failures.append((index, str(mismatch)))
    return failures
