"""
Classification of the behaviour of solutions.

A solution is run on tests one at a time.  Each run is summarised as a
BehaviorObservation, and the observations of a solution are OR-ed
together into a BehaviorSummary of the failure modes it ever exhibited.
The summary is then held against the tag the solution is declared with:
a correct solution must never fail, while a solution tagged with a
failure mode must exhibit that failure on at least one test.
"""
import logging
from dataclasses import dataclass
from enum import StrEnum
from pathlib import Path

from .checker import Checker, CheckerVerdict, expected_checker_verdict
from .metadata import Solution, SolutionTag
from .run import ExecutionOptions, ExecutionStatus, JUDGED_OUTCOMES, Supervisor
from .testsets import OutputLayout, Test, Testset

log = logging.getLogger(__name__)


class ClassifierError(Exception):
    pass


class Flag(StrEnum):
    TLE = 'TLE'
    MLE = 'MLE'
    RTE = 'RTE'
    WA = 'WA'
    PE = 'PE'


@dataclass(frozen=True)
class BehaviorObservation:
    test: Test
    timed_out: bool = False
    memory_exceeded: bool = False
    runtime_error: bool = False
    checker_verdict: CheckerVerdict | None = None
    diagnostic: str = ''

    @property
    def flags(self) -> frozenset[Flag]:
        flags = set()
        if self.timed_out:
            flags.add(Flag.TLE)
        if self.memory_exceeded:
            flags.add(Flag.MLE)
        if self.runtime_error:
            flags.add(Flag.RTE)
        if self.checker_verdict is CheckerVerdict.WA:
            flags.add(Flag.WA)
        if self.checker_verdict is CheckerVerdict.PE:
            flags.add(Flag.PE)
        return frozenset(flags)

    @property
    def failed(self) -> bool:
        return bool(self.flags)


class BehaviorSummary(object):
    """The failure modes a solution exhibited, accumulated over tests."""

    def __init__(self) -> None:
        self.observations: list[BehaviorObservation] = []
        self._flags: set[Flag] = set()

    def record(self, observation: BehaviorObservation) -> None:
        self.observations.append(observation)
        self._flags |= observation.flags

    @property
    def flags(self) -> list[Flag]:
        return [flag for flag in Flag if flag in self._flags]

    def any(self) -> bool:
        return bool(self._flags)

    def __contains__(self, flag: Flag) -> bool:
        return flag in self._flags

    def tests_with(self, flag: Flag) -> list[Test]:
        return [obs.test for obs in self.observations if flag in obs.flags]


@dataclass(frozen=True)
class ComparisonOutcome:
    solution: str
    tag: SolutionTag
    summary: BehaviorSummary
    passed: bool
    reason: str = ''


# The flag a solution with a failing tag must exhibit on some test.  Correct
# solutions must not exhibit any flag at all.
REQUIRED_FLAG: dict[SolutionTag, Flag] = {
    SolutionTag.WRONG_ANSWER: Flag.WA,
    SolutionTag.REJECTED: Flag.WA,
    SolutionTag.PRESENTATION_ERROR: Flag.PE,
    SolutionTag.TIME_LIMIT: Flag.TLE,
    SolutionTag.IDLENESS_LIMIT: Flag.TLE,
    SolutionTag.MEMORY_LIMIT: Flag.MLE,
    SolutionTag.RUNTIME_ERROR: Flag.RTE,
}


def evaluate(solution: Solution, summary: BehaviorSummary) -> ComparisonOutcome:
    """Decide whether the observed behaviour of a solution matches its tag."""
    if solution.tag.is_correct:
        if not summary.any():
            return ComparisonOutcome(solution.name, solution.tag, summary, True)
        observed = []
        for flag in summary.flags:
            tests = summary.tests_with(flag)
            observed.append(f'{flag} on {tests[0]}' + (f' and {len(tests) - 1} more' if len(tests) > 1 else ''))
        reason = f'declared {solution.tag} but observed {"; ".join(observed)}'
        return ComparisonOutcome(solution.name, solution.tag, summary, False, reason)

    required = REQUIRED_FLAG[solution.tag]
    if required in summary:
        return ComparisonOutcome(solution.name, solution.tag, summary, True)
    reason = f'declared {solution.tag} but never observed {required}'
    if summary.any():
        reason += f' (observed {", ".join(summary.flags)})'
    return ComparisonOutcome(solution.name, solution.tag, summary, False, reason)


class VerdictClassifier(object):
    """Runs solutions on tests and classifies what they do.

    The output of the main solution serves as the jury answer, so the
    main solution has to be run on a test before any other solution is
    checked on it.
    """

    def __init__(self, supervisor: Supervisor, checker: Checker, layout: OutputLayout,
                 time_limit: int, memory_limit: int, commands: dict[str, str],
                 main_solution: str) -> None:
        """
        Args:
            supervisor (Supervisor): supervisor to run solutions with
            checker (Checker): checker to judge outputs with
            layout (OutputLayout): where outputs are written
            time_limit (int): time limit of the solutions, in ms
            memory_limit (int): memory limit of the solutions, in MB
            commands (dict): run command of each solution, by name
            main_solution (str): name of the main solution
        """
        self.supervisor = supervisor
        self.checker = checker
        self.layout = layout
        self.time_limit = time_limit
        self.memory_limit = memory_limit
        self.commands = commands
        self.main_solution = main_solution
        self._options = ExecutionOptions(timeout=time_limit, memory_limit=memory_limit,
                                         silent=True, handles=JUDGED_OUTCOMES)

    def answer_path(self, test: Test) -> Path:
        return self.layout.output_path(self.main_solution, test.testset, test)

    async def run_test(self, solution: Solution, test: Test, check: bool = True) -> BehaviorObservation:
        """Run a solution on one test.

        If the solution does not finish normally, a diagnostic replaces
        its output.  Otherwise, when check is set, its output is judged
        by the checker against the answer.
        """
        outfile = self.layout.output_path(solution.name, test.testset, test)
        result = await self.supervisor.execute_with_redirect(self.commands[solution.name], self._options,
                                                             infile=test.path, outfile=outfile)
        match result.status:
            case ExecutionStatus.TIMED_OUT:
                observation = BehaviorObservation(test, timed_out=True,
                                                  diagnostic=f'Time Limit Exceeded after {self.time_limit}ms')
            case ExecutionStatus.MEMORY_EXCEEDED:
                observation = BehaviorObservation(test, memory_exceeded=True,
                                                  diagnostic=f'Memory Limit Exceeded ({self.memory_limit} MB)')
            case ExecutionStatus.NON_ZERO_EXIT:
                observation = BehaviorObservation(test, runtime_error=True,
                                                  diagnostic=f'Runtime Error: {result.stderr.strip()}')
            case _:
                observation = None

        if observation is not None:
            outfile.write_text(observation.diagnostic)
            log.debug('%s on %s: %s', solution.name, test, observation.diagnostic)
            return observation
        if not check:
            return BehaviorObservation(test)

        answer = self.answer_path(test)
        if not answer.is_file():
            raise ClassifierError(f'No answer for {test}: {self.main_solution} has not been run on it')
        verdict, feedback = await self.checker.evaluate(test.path, outfile, answer,
                                                        expected_checker_verdict(solution.tag))
        log.debug('%s on %s: checker says %s', solution.name, test, verdict)
        return BehaviorObservation(test, checker_verdict=verdict,
                                   diagnostic=feedback if verdict is not CheckerVerdict.OK else '')

    async def run_testset(self, solution: Solution, testset: Testset, group: str | None = None,
                          test: int | None = None, check: bool = False) -> BehaviorSummary:
        """Run a solution on (part of) a testset, stopping at the first
        test it fails."""
        summary = BehaviorSummary()
        for current in testset.select(group=group, test=test):
            observation = await self.run_test(solution, current, check=check)
            summary.record(observation)
            if observation.failed:
                break
        return summary

    async def compare_solution_against_tag(self, solution: Solution,
                                           testsets: list[Testset]) -> ComparisonOutcome:
        """Run a solution on every test of the testsets and decide whether
        its behaviour matches its tag.

        All tests are run even once the outcome is clear, so that the
        summary covers everything the solution does.
        """
        summary = BehaviorSummary()
        for testset in testsets:
            for test in testset.tests:
                summary.record(await self.run_test(solution, test))
        outcome = evaluate(solution, summary)
        log.debug('%s (%s): %s', solution.name, solution.tag, 'OK' if outcome.passed else outcome.reason)
        return outcome
