"""
Invoking the input validator of a problem package.

The validator reads a test input on stdin and exits with 0 if the input
is valid, and with any other code if it is not.
"""
import logging
from enum import StrEnum
from pathlib import Path

import pydantic
import yaml
from pydantic import BaseModel, ConfigDict

from .metadata import MetadataError
from .run import ExecutionOptions, ExecutionStatus, Supervisor
from .run.errors import ExecutionError

log = logging.getLogger(__name__)


class ValidatorVerdict(StrEnum):
    VALID = 'VALID'
    INVALID = 'INVALID'

    @classmethod
    def _missing_(cls, value):
        if isinstance(value, str):
            for member in cls:
                if member.value == value.upper():
                    return member
        return None


class ValidatorError(Exception):
    """The validator did not come to a verdict."""
    pass


class Validator(object):
    def __init__(self, command: str, supervisor: Supervisor,
                 timeout: int = 10000, memory_limit: int = 1024) -> None:
        self.command = command
        self.supervisor = supervisor
        self.options = ExecutionOptions(timeout=timeout, memory_limit=memory_limit, silent=True,
                                        handles=frozenset([ExecutionStatus.NON_ZERO_EXIT]))

    async def check_input(self, infile) -> tuple[bool, str]:
        """Validate one input file.

        Returns:
            pair (valid, feedback), feedback being what the validator
            wrote to stderr.
        """
        try:
            result = await self.supervisor.execute_with_redirect(self.command, self.options, infile=infile)
        except ExecutionError as err:
            self.supervisor.cleanup()
            raise ValidatorError(f'Validator failed on {infile}: {err}') from err
        if not result.success:
            log.debug('validator rejected %s (exit code %d)', infile, result.exit_code)
        return (result.success, result.stderr.strip())

    async def validate(self, infile) -> bool:
        valid, _ = await self.check_input(infile)
        return valid


class ValidatorTest(BaseModel):
    input: str
    verdict: ValidatorVerdict

    model_config = ConfigDict(extra='forbid')


class ValidatorTests(BaseModel):
    tests: list[ValidatorTest]

    model_config = ConfigDict(extra='forbid')


def load_validator_tests(path: Path) -> list[ValidatorTest]:
    """Load validator self-tests from a YAML file of the form

        tests:
          - {input: ..., verdict: VALID|INVALID}
    """
    try:
        with open(path) as f:
            data = yaml.safe_load(f)
        return ValidatorTests.model_validate(data).tests
    except (OSError, yaml.YAMLError, pydantic.ValidationError) as e:
        raise MetadataError(f'Failed to load validator tests from {path}: {e}')


async def run_validator_tests(validator: Validator, tests: list[ValidatorTest],
                              workdir: Path) -> list[tuple[int, str]]:
    """Returns (1-based test index, message) for each self-test that the
    validator got wrong."""
    workdir = Path(workdir)
    workdir.mkdir(parents=True, exist_ok=True)
    failures = []
    for index, test in enumerate(tests, start=1):
        path = workdir / f'validator_test{index}.in'
        path.write_text(test.input)
        valid = await validator.validate(path)
        actual = ValidatorVerdict.VALID if valid else ValidatorVerdict.INVALID
        if actual is not test.verdict:
            failures.append((index, f'Expected {test.verdict} but got {actual}'))
    return failures
