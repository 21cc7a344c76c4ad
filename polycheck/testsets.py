"""
Test data of a problem package.

Tests live in testsets/<testset>/test<N>.txt under the problem root.  A
testset is an ordered list of tests, optionally partitioned into named
groups which refer to tests by their (1-based) position.
"""
import logging
import re
from dataclasses import dataclass, field
from pathlib import Path

from .metadata import Metadata

log = logging.getLogger(__name__)

_TEST_FILE_RE = re.compile(r'^test(\d+)\.txt$')


class TestDataError(Exception):
    pass


@dataclass(frozen=True)
class Test:
    __test__ = False

    testset: str
    position: int
    path: Path

    @property
    def filename(self) -> str:
        return self.path.name

    def __str__(self):
        return f'{self.testset} test {self.position}'


@dataclass
class Testset:
    __test__ = False

    name: str
    tests: list[Test] = field(default_factory=list)
    groups: dict[str, list[int]] = field(default_factory=dict)

    def __len__(self):
        return len(self.tests)

    def select(self, group: str | None = None, test: int | None = None) -> list[Test]:
        """The tests of this testset, restricted to a group and/or a
        single test position."""
        tests = self.tests
        if group is not None:
            if group not in self.groups:
                raise TestDataError(f'Group "{group}" not found in testset {self.name}. '
                                    f'Available groups: {", ".join(sorted(self.groups)) or "none"}')
            positions = set(self.groups[group])
            tests = [t for t in tests if t.position in positions]
        if test is not None:
            tests = [t for t in tests if t.position == test]
            if not tests:
                raise TestDataError(f'Test {test} not found in testset {self.name}'
                                    + (f' group {group}' if group is not None else ''))
        return tests


class OutputLayout(object):
    """Where the outputs of solutions are written.

    The output of solution S on test T of testset X is kept at
    <root>/S/X/output_<name of T's input file>.  On failure the file
    holds a diagnostic instead of program output.
    """

    def __init__(self, root: Path) -> None:
        self.root = Path(root)

    def output_path(self, solution: str, testset: str, test: Test) -> Path:
        directory = self.root / solution / testset
        directory.mkdir(parents=True, exist_ok=True)
        return directory / f'output_{test.filename}'


def testset_directory(problem_root: Path, testset: str) -> Path:
    return Path(problem_root) / 'testsets' / testset


def input_path(problem_root: Path, testset: str, position: int) -> Path:
    return testset_directory(problem_root, testset) / f'test{position}.txt'


def resolve_testsets(problem_root: Path, metadata: Metadata) -> list[Testset]:
    """Build the testsets of a problem from its metadata.

    With a generator script, the testset has one test per script
    command, whether generated yet or not.  Without one, the test files
    already present in the testset directory are used, ordered by
    number.
    """
    result = []
    for conf in metadata.testsets:
        groups = {name: sorted(set(positions)) for name, positions in conf.groups.items()}
        if conf.generator_script is not None:
            positions = list(range(1, len(conf.generator_script) + 1))
            for position, command in zip(positions, conf.generator_script):
                if command.group is not None:
                    groups.setdefault(command.group, [])
                    if position not in groups[command.group]:
                        groups[command.group].append(position)
        else:
            positions = _discover(testset_directory(problem_root, conf.name))

        tests = [Test(conf.name, position, input_path(problem_root, conf.name, position))
                 for position in positions]
        existing = set(positions)
        for name, members in groups.items():
            missing = [p for p in members if p not in existing]
            if missing:
                raise TestDataError(f'Group {name} of testset {conf.name} refers to missing tests '
                                    f'{", ".join(map(str, missing))}')
        log.debug('testset %s: %d tests, groups %s', conf.name, len(tests), sorted(groups))
        result.append(Testset(conf.name, tests, groups))
    return result


def find_testset(testsets: list[Testset], name: str) -> Testset:
    for testset in testsets:
        if testset.name == name:
            return testset
    raise TestDataError(f'Testset "{name}" not found. '
                        f'Available testsets: {", ".join(t.name for t in testsets) or "none"}')


def _discover(directory: Path) -> list[int]:
    if not directory.is_dir():
        return []
    positions = []
    for entry in directory.iterdir():
        match = _TEST_FILE_RE.match(entry.name)
        if match and entry.is_file():
            positions.append(int(match.group(1)))
    return sorted(positions)
