#! /usr/bin/env python3
# -*- coding: utf-8 -*-
from __future__ import annotations

import argparse
import asyncio
import logging
import os
import re
import shutil
import sys
import tempfile
from abc import ABC
from pathlib import Path
from typing import ClassVar, Pattern, Type, TypeVar

import colorlog

from . import languages
from . import metadata
from . import run
from . import version
from .checker import Checker, CheckerError, load_checker_tests, run_checker_tests
from .classifier import ClassifierError, VerdictClassifier
from .generator import GeneratorError, generate_testset
from .testsets import OutputLayout, TestDataError, Testset, resolve_testsets
from .validator import Validator, ValidatorError, load_validator_tests, run_validator_tests

log = logging.getLogger(__name__)


class VerifyError(Exception):
    pass


class ProblemAspect(ABC):
    errors: int = 0
    warnings: int = 0
    _check_res: bool | None = None
    problem: Problem

    def __append_additional_info(self, msg: str, additional_info: str | None) -> str:
        max_additional_info = self.problem.max_additional_info()
        if additional_info is None or max_additional_info <= 0:
            return msg
        additional_info = additional_info.rstrip()
        if not additional_info:
            return msg
        lines = additional_info.split('\n')
        if len(lines) == 1:
            return f'{msg} ({lines[0]})'
        if len(lines) > max_additional_info:
            lines = lines[:max_additional_info] + [f'[.....truncated to {max_additional_info} lines.....]']

        return f'{msg}:\n' + '\n'.join(' ' * 8 + line for line in lines)

    def __init__(self, name: str, problem: Problem) -> None:
        self.log = log.getChild(name)
        self.problem = problem

    def fatal(self, msg: str, additional_info: str | None = None, *args) -> None:
        self._check_res = False
        self._add_error()
        self.log.critical(self.__append_additional_info(msg, additional_info), *args)
        raise VerifyError(msg)

    def error(self, msg: str, additional_info: str | None = None, *args) -> None:
        self._check_res = False
        self._add_error()
        self.log.error(self.__append_additional_info(msg, additional_info), *args)
        if self.problem.bail_on_error():
            raise VerifyError(msg)

    def warning(self, msg: str, additional_info: str | None = None, *args) -> None:
        if self.problem.consider_warnings_errors():
            self.error(msg, additional_info, *args)
            return
        self._add_warning()
        self.log.warning(self.__append_additional_info(msg, additional_info), *args)

    def info(self, msg: str, *args) -> None:
        self.log.info(msg, *args)

    def debug(self, msg: str, *args) -> None:
        self.log.debug(msg, *args)

    def msg(self, msg):
        print(msg)

    def _add_error(self) -> None:
        self.errors += 1
        if self.problem is not self:
            self.problem._add_error()

    def _add_warning(self) -> None:
        self.warnings += 1
        if self.problem is not self:
            self.problem._add_warning()


class ProblemPart(ProblemAspect):
    """Baseclass for the parts of a problem package that are verified.

    PART_NAME must be overridden, and names the part on the command line
    and in logs.  A part that needs the result of another part awaits
    that part's check() first; check() only does its work once.
    """

    PART_NAME: ClassVar[str]

    def __init__(self, problem: Problem) -> None:
        if self.PART_NAME is None:
            raise NotImplementedError('Every problem-part must override PART_NAME')
        super().__init__(f'{problem.shortname}.{self.PART_NAME}', problem)

    def setup(self) -> None:
        pass

    async def check(self) -> bool:
        return True

    async def compile(self, program: run.Program, what: str) -> str | None:
        """Compile a program, reporting an error if that fails.

        Returns:
            the run command of the program, or None if it did not compile.
        """
        success, msg = await asyncio.to_thread(program.compile)
        if not success:
            self.error(f'Compile error for {what} {program}', msg)
            return None
        return program.get_runcmd()


class ProblemConfig(ProblemPart):
    PART_NAME = 'config'

    def setup(self):
        try:
            self.problem.metadata = metadata.load_metadata(Path(self.problem.probdir))
        except metadata.MetadataError as e:
            self.fatal(str(e))

    def __str__(self) -> str:
        return 'problem configuration'

    async def check(self) -> bool:
        if self._check_res is not None:
            return self._check_res
        self._check_res = True

        meta = self.problem.metadata
        sources = [(f'solution {s.name}', s.source) for s in meta.solutions]
        sources += [(f'generator {g.name}', g.source) for g in meta.generators]
        sources.append(('checker', meta.checker.source))
        if meta.checker.tests is not None:
            sources.append(('checker tests', meta.checker.tests))
        if meta.validator is not None:
            sources.append(('validator', meta.validator.source))
            if meta.validator.tests is not None:
                sources.append(('validator tests', meta.validator.tests))
        for what, source in sources:
            if not os.path.exists(os.path.join(self.problem.probdir, source)):
                self.error(f'File {source} of {what} does not exist')

        if meta.time_limit > meta.limits.checker_time:
            self.warning(f'Time limit of {meta.time_limit} ms is larger than the checker budget of {meta.limits.checker_time} ms')
        return self._check_res


class TestData(ProblemPart):
    PART_NAME = 'data'

    def setup(self):
        self.testsets: list[Testset] = []

    def __str__(self) -> str:
        return 'test data'

    async def check(self) -> bool:
        if self._check_res is not None:
            return self._check_res
        self._check_res = True

        meta = self.problem.metadata
        scripted = [conf for conf in meta.testsets if conf.generator_script is not None]
        if scripted:
            commands = {}
            used = {command.generator for conf in scripted for command in conf.generator_script}
            for gen in meta.generators:
                if gen.name not in used:
                    self.warning(f'Generator {gen.name} is not used by any generator script')
                    continue
                program = self.problem.get_program(gen.source, f'generator {gen.name}')
                runcmd = await self.compile(program, 'generator') if program is not None else None
                if runcmd is not None:
                    commands[gen.name] = runcmd
            for conf in scripted:
                try:
                    await generate_testset(self.problem.supervisor, conf, commands, Path(self.problem.probdir),
                                           timeout=meta.limits.generator_time,
                                           memory_limit=meta.limits.generator_memory)
                    self.info(f'Generated {len(conf.generator_script)} tests for testset {conf.name}')
                except GeneratorError as e:
                    self.error(f'Failed to generate testset {conf.name}', str(e))

        try:
            self.testsets = resolve_testsets(Path(self.problem.probdir), meta)
        except TestDataError as e:
            self.fatal(str(e))

        for testset in self.testsets:
            if len(testset) == 0:
                self.warning(f'Testset {testset.name} has no tests')
            for test in testset.tests:
                if not test.path.is_file():
                    self.error(f'Input file of {test} is missing: {test.path}')
                elif test.path.stat().st_size == 0:
                    self.warning(f'Input file of {test} is empty')
        if sum(len(testset) for testset in self.testsets) == 0:
            self.error('No tests found')
        return self._check_res


class InputValidator(ProblemPart):
    PART_NAME = 'validator'

    def setup(self):
        self.validator: Validator | None = None

    def __str__(self) -> str:
        return 'input validator'

    async def check(self) -> bool:
        if self._check_res is not None:
            return self._check_res
        self._check_res = True

        meta = self.problem.metadata
        if meta.validator is None:
            self.warning('No input validator configured')
            return self._check_res
        program = self.problem.get_program(meta.validator.source, 'input validator')
        if program is None:
            return self._check_res
        runcmd = await self.compile(program, 'input validator')
        if runcmd is None:
            return self._check_res
        self.validator = Validator(runcmd, self.problem.supervisor,
                                   timeout=meta.limits.validator_time,
                                   memory_limit=meta.limits.validator_memory)

        try:
            if meta.validator.tests is not None:
                tests = load_validator_tests(Path(self.problem.probdir) / meta.validator.tests)
                failures = await run_validator_tests(self.validator, tests,
                                                     Path(self.problem.tmpdir) / 'validator_tests')
                for index, message in failures:
                    self.error(f'Validator self-test {index} failed: {message}')
                self.info(f'Ran {len(tests)} validator self-tests')

            await self.problem.part(TestData).check()
            for testset in self.problem.part(TestData).testsets:
                for test in testset.tests:
                    if not test.path.is_file():
                        continue
                    valid, feedback = await self.validator.check_input(test.path)
                    if not valid:
                        self.error(f'Input validator rejected {test}', feedback)
        except metadata.MetadataError as e:
            self.error(str(e))
        except ValidatorError as e:
            self.fatal(str(e))
        return self._check_res


class OutputChecker(ProblemPart):
    PART_NAME = 'checker'

    def setup(self):
        self.checker: Checker | None = None

    def __str__(self) -> str:
        return 'checker'

    async def check(self) -> bool:
        if self._check_res is not None:
            return self._check_res
        self._check_res = True

        meta = self.problem.metadata
        program = self.problem.get_program(meta.checker.source, 'checker')
        if program is None:
            return self._check_res
        runcmd = await self.compile(program, 'checker')
        if runcmd is None:
            return self._check_res
        checker = Checker(runcmd, self.problem.supervisor,
                          timeout=meta.limits.checker_time,
                          memory_limit=meta.limits.checker_memory)

        if meta.checker.tests is not None:
            try:
                tests = load_checker_tests(Path(self.problem.probdir) / meta.checker.tests)
                failures = await run_checker_tests(checker, tests, Path(self.problem.tmpdir) / 'checker_tests')
            except metadata.MetadataError as e:
                self.error(str(e))
                return self._check_res
            except CheckerError as e:
                self.fatal(str(e))
            for index, message in failures:
                self.error(f'Checker self-test {index} failed: {message}')
            self.info(f'Ran {len(tests)} checker self-tests')

        self.checker = checker
        return self._check_res


class Solutions(ProblemPart):
    PART_NAME = 'solutions'

    def __str__(self) -> str:
        return 'solutions'

    async def check(self) -> bool:
        if self._check_res is not None:
            return self._check_res
        self._check_res = True

        meta = self.problem.metadata
        await self.problem.part(TestData).check()
        await self.problem.part(OutputChecker).check()
        checker = self.problem.part(OutputChecker).checker
        if checker is None:
            self.fatal('No working checker, cannot judge solutions')

        testsets = [ts for ts in self.problem.part(TestData).testsets
                    if self.problem.data_filter().search(ts.name)]
        testsets = [Testset(ts.name, [t for t in ts.tests if t.path.is_file()], ts.groups) for ts in testsets]
        if sum(len(ts) for ts in testsets) == 0:
            self.error('No tests to run the solutions on')
            return self._check_res

        main = meta.main_solution
        selected = [sol for sol in meta.solutions
                    if sol is not main and self.problem.submission_filter().search(sol.name)]
        commands = {}
        for sol in [main] + selected:
            program = self.problem.get_program(sol.source, f'{sol.tag} solution {sol.name}')
            runcmd = await self.compile(program, f'{sol.tag} solution') if program is not None else None
            if runcmd is not None:
                commands[sol.name] = runcmd
            elif sol is main:
                self.fatal(f'Main solution {main.name} cannot be run')

        classifier = VerdictClassifier(self.problem.supervisor, checker,
                                       OutputLayout(Path(self.problem.tmpdir) / 'outputs'),
                                       meta.time_limit, meta.memory_limit, commands, main.name)
        try:
            # The main solution produces the answers, so it has to pass
            # everything before anything else can be judged.
            self.info(f'Running main solution {main.name}')
            for testset in testsets:
                summary = await classifier.run_testset(main, testset)
                if summary.any():
                    failure = summary.observations[-1]
                    self.fatal(f'Main solution {main.name} failed on {failure.test}', failure.diagnostic)
            self.msg(f'   {main.tag} solution {main.name} OK')

            for sol in selected:
                if sol.name not in commands:
                    continue
                self.info(f'Check {sol.tag} solution {sol.name}')
                outcome = await classifier.compare_solution_against_tag(sol, testsets)
                if outcome.passed:
                    observed = ', '.join(outcome.summary.flags) or 'no failures'
                    self.msg(f'   {sol.tag} solution {sol.name} OK: {observed}')
                else:
                    details = '\n'.join(f'{obs.test}: {obs.diagnostic}'
                                        for obs in outcome.summary.observations if obs.failed)
                    self.error(f'{sol.tag} solution {sol.name}: {outcome.reason}', details)
        except (CheckerError, ClassifierError, run.ExecutionError) as e:
            self.fatal(str(e))
        return self._check_res


PROBLEM_PARTS: list[Type[ProblemPart]] = [ProblemConfig, TestData, InputValidator, OutputChecker, Solutions]
PART_NAMES = [part.PART_NAME for part in PROBLEM_PARTS]

_ProblemPartT = TypeVar('_ProblemPartT', bound=ProblemPart)


class Problem(ProblemAspect):
    """Represents a checkable problem package"""

    def __init__(self, probdir: str, args: argparse.Namespace) -> None:
        self.probdir = os.path.realpath(probdir)
        self.shortname: str = os.path.basename(self.probdir)
        super().__init__(self.shortname, self)
        self.language_config = languages.load_language_config()
        self.metadata: metadata.Metadata
        self.supervisor = run.Supervisor()
        self._args = args
        self._parts: dict[str, ProblemPart] = {}
        self.loaded = False

    def part(self, part: Type[_ProblemPartT]) -> _ProblemPartT:
        return self._parts[part.PART_NAME]  # type: ignore

    def load(self) -> None:
        """Set up all parts of the problem, reading problem.yaml.

        Raises:
            VerifyError: if problem package is too broken to parse safely
        """
        if self.loaded:
            return
        if not os.path.isdir(self.probdir):
            self.fatal(f"Problem directory '{self.probdir}' not found")
        for part_class in PROBLEM_PARTS:
            self.debug(f'Initializing {part_class.PART_NAME}')
            part = part_class(self)
            part.setup()
            self._parts[part_class.PART_NAME] = part
        self.loaded = True

    def get_program(self, source: str, what: str) -> run.Program | None:
        """Program for a source file or directory of the package, or None
        (after reporting an error) if there is no way to run it."""
        path = os.path.join(self.probdir, source)
        try:
            program = run.get_program(path, language_config=self.language_config,
                                      work_dir=self.tmpdir,
                                      compilation_time=self.metadata.limits.compilation_time)
        except run.ProgramError as e:
            self.error(f'Could not set up {what}: {e}')
            return None
        if program is None:
            self.error(f'Could not determine the language of {what} ({source})')
        return program

    def __enter__(self) -> Problem:
        self.tmpdir = tempfile.mkdtemp(prefix=f'verify-{self.shortname}-')
        return self

    def __exit__(self, exc_type, exc_value, exc_traceback) -> None:
        self.supervisor.cleanup()
        shutil.rmtree(self.tmpdir)

    def __str__(self) -> str:
        return str(self.shortname)

    def check(self) -> tuple[int, int]:
        """Loads and checks the problem package

        Returns:
            Tuple with the number of errors, warnings found.
        """
        try:
            self.load()
        except VerifyError:
            return self.errors, self.warnings
        try:
            asyncio.run(self._check_parts())
        except VerifyError:
            pass
        finally:
            self.supervisor.cleanup()
        return self.errors, self.warnings

    async def _check_parts(self) -> None:
        if sys.platform != 'win32':
            from .run import limit
            limit.check_limit_capabilities(self, self.metadata.memory_limit)
        if not self.supervisor.builder.enforces_memory_limit:
            self.info('Memory limits are not enforced on this platform, running out of '
                      'memory is only detected from how a program exits')
        for name in PART_NAMES:
            if name in self._args.parts:
                self.msg(f'Checking {name}')
                await self._parts[name].check()

    def bail_on_error(self) -> bool:
        return self._args.bail_on_error

    def consider_warnings_errors(self) -> bool:
        return self._args.werror

    def max_additional_info(self) -> int:
        return self._args.max_additional_info

    def submission_filter(self) -> Pattern[str]:
        return self._args.submission_filter

    def data_filter(self) -> Pattern[str]:
        return self._args.data_filter


def re_argument(s: str) -> Pattern[str]:
    try:
        r = re.compile(s)
        return r
    except re.error:
        raise argparse.ArgumentTypeError(f'{s} is not a valid regex')


def part_argument(s: str) -> str:
    if s not in PART_NAMES:
        raise argparse.ArgumentTypeError(f'Invalid problem part specified: {s}')
    return s


def argparser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description='Verify a problem package: generate and validate its tests, and check that '
                    'every solution behaves the way its tag says.')
    parser.add_argument('-s', '--submission_filter', metavar='SOLUTIONS', type=re_argument, default=re.compile('.*'),
                        help='check only solutions whose name contains this regex (the main solution is always run)')
    parser.add_argument('-d', '--data_filter', metavar='TESTSETS', type=re_argument, default=re.compile('.*'),
                        help='run solutions only on testsets whose name contains this regex')
    parser.add_argument('-p', '--parts', metavar='PROBLEM_PART', type=part_argument, nargs='+', default=PART_NAMES,
                        help=f'only test the indicated parts of the problem.  Each PROBLEM_PART can be one of {PART_NAMES}.')
    parser.add_argument('-b', '--bail_on_error', action='store_true', help='bail verification on first error')
    parser.add_argument('-l', '--log_level', default='warning', help='set log level (debug, info, warning, error, critical)')
    parser.add_argument('-e', '--werror', action='store_true', help='consider warnings as errors')
    parser.add_argument('--max_additional_info', type=int, default=15,
                        help='maximum number of lines of additional info (e.g. compiler output or checker feedback) '
                             'to display about an error (set to 0 to disable additional info)')
    parser.add_argument('problemdir', nargs='+')
    version.add_version_arg(parser)
    return parser


def initialize_logging(args: argparse.Namespace) -> None:
    fmt = '%(log_color)s%(levelname)s %(message)s'
    colorlog.basicConfig(stream=sys.stdout, format=fmt, level=getattr(logging, args.log_level.upper()))


def main() -> None:
    args = argparser().parse_args()

    initialize_logging(args)

    total_errors = 0
    try:
        for problemdir in args.problemdir:
            print(f'Loading problem {os.path.basename(os.path.realpath(problemdir))}')
            with Problem(problemdir, args) as prob:
                errors, warnings = prob.check()

                def p(x: int) -> str:
                    return '' if x == 1 else 's'

                print(f'{prob.shortname} tested: {errors} error{p(errors)}, {warnings} warning{p(warnings)}')
                total_errors += errors

    except KeyboardInterrupt:
        print('\naborting...')
    finally:
        if total_errors > 0:
            sys.exit(1)


if __name__ == '__main__':
    main()
