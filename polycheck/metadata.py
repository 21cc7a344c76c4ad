import copy
from dataclasses import dataclass, field
from enum import StrEnum
from pathlib import Path
from typing import Any

import pydantic
import yaml
from pydantic import BaseModel, ConfigDict, PositiveInt, model_validator

from . import config


class MetadataError(Exception):
    pass


class SolutionTag(StrEnum):
    """The declared expected behaviour of a solution, with Polygon's codes."""

    MAIN_CORRECT = 'MA'
    ACCEPTED = 'OK'
    WRONG_ANSWER = 'WA'
    REJECTED = 'RJ'
    TIME_LIMIT = 'TL'
    IDLENESS_LIMIT = 'IL'
    MEMORY_LIMIT = 'ML'
    RUNTIME_ERROR = 'RE'
    PRESENTATION_ERROR = 'PE'

    @property
    def is_correct(self) -> bool:
        return self in (SolutionTag.MAIN_CORRECT, SolutionTag.ACCEPTED)

    # Accept lower case codes, and TO which older packages use for IL.
    @classmethod
    def _missing_(cls, value):
        if not isinstance(value, str):
            return None
        value = value.upper()
        if value == 'TO':
            return cls.IDLENESS_LIMIT
        for member in cls:
            if member.value == value:
                return member
        return None


@dataclass
class Solution:
    name: str
    source: str
    tag: SolutionTag


@dataclass
class Generator:
    name: str
    source: str


class ScriptCommand(BaseModel):
    """One line of a generator script: either run a generator with
    arguments, or copy a hand-written test."""

    generator: str | None = None
    args: str = ''
    manual: str | None = None
    group: str | None = None

    model_config = ConfigDict(extra='forbid')

    @model_validator(mode='after')
    def check_kind(self) -> 'ScriptCommand':
        if (self.generator is None) == (self.manual is None):
            raise ValueError('script command needs exactly one of generator and manual')
        if self.manual is not None and self.args:
            raise ValueError('manual test %s cannot have arguments' % self.manual)
        return self

    def __str__(self):
        if self.manual is not None:
            return 'manual %s' % self.manual
        return ('%s %s' % (self.generator, self.args)).strip()


@dataclass
class TestsetConfig:
    name: str
    groups: dict[str, list[PositiveInt]] = field(default_factory=dict)
    generator_script: list[ScriptCommand] | None = None


@dataclass
class ProgramConfig:
    """A checker or validator: its source and an optional self-test file."""

    source: str
    tests: str | None = None


@dataclass
class Limits:
    checker_time: PositiveInt
    checker_memory: PositiveInt
    validator_time: PositiveInt
    validator_memory: PositiveInt
    generator_time: PositiveInt
    generator_memory: PositiveInt
    compilation_time: PositiveInt


class Metadata(BaseModel):
    """
    The contents of a problem package's problem.yaml.

    time_limit is in milliseconds and memory_limit in MB; both apply to
    the judged solutions.
    """

    name: str
    time_limit: PositiveInt
    memory_limit: PositiveInt
    solutions: list[Solution]
    generators: list[Generator] = []
    testsets: list[TestsetConfig] = [TestsetConfig(name='tests')]
    checker: ProgramConfig
    validator: ProgramConfig | None = None
    limits: Limits

    model_config = ConfigDict(extra='forbid')

    @model_validator(mode='after')
    def check_consistency(self) -> 'Metadata':
        for kind, names in (('solution', [s.name for s in self.solutions]),
                            ('generator', [g.name for g in self.generators]),
                            ('testset', [t.name for t in self.testsets])):
            duplicates = sorted(set(name for name in names if names.count(name) > 1))
            if duplicates:
                raise ValueError('duplicate %s names: %s' % (kind, ', '.join(duplicates)))
        main = [s.name for s in self.solutions if s.tag is SolutionTag.MAIN_CORRECT]
        if len(main) != 1:
            raise ValueError('exactly one solution must be tagged MA, found %d' % len(main))
        return self

    @property
    def main_solution(self) -> Solution:
        return next(s for s in self.solutions if s.tag is SolutionTag.MAIN_CORRECT)


def parse_metadata(problem_yaml_data: dict[str, Any]) -> Metadata:
    """
    Parses a data structure from problem.yaml into a Metadata model
    :raises pydantic.ValidationError: on invalid data
    """
    # Mix in the system default limits before doing model validation.  If
    # limits is something silly like a string, let pydantic complain.
    data = copy.deepcopy(problem_yaml_data)
    if isinstance(data.get('limits', {}), dict):
        data['limits'] = config.default_limits() | data.get('limits', {})
    return Metadata.model_validate(data)


def load_metadata(problem_root: Path) -> Metadata:
    """Load and validate problem.yaml of the problem package in problem_root.

    Raises:
        MetadataError if the file is missing, is not valid YAML, or
        does not describe a valid problem.
    """
    path = Path(problem_root) / 'problem.yaml'
    try:
        with open(path) as f:
            data = yaml.safe_load(f) or {}
    except FileNotFoundError:
        raise MetadataError(f'No problem.yaml found in {problem_root}')
    except yaml.YAMLError as e:
        raise MetadataError(f'Failed to parse {path}: {e}')
    if not isinstance(data, dict):
        raise MetadataError(f'{path} must contain a mapping, got {type(data).__name__}')

    try:
        return parse_metadata(data)
    except pydantic.ValidationError as e:
        messages = ['%s: %s' % ('.'.join(str(loc) for loc in err['loc']) or '<root>', err['msg'])
                    for err in e.errors()]
        raise MetadataError(f'Invalid {path}:\n  ' + '\n  '.join(messages))
    except config.ConfigError as e:
        raise MetadataError(f'Cannot read default limits for {path}: {e}')
