"""
Generation of test inputs from the generator script of a testset.
"""
import logging
import shutil
from pathlib import Path

from .metadata import ScriptCommand, TestsetConfig
from .run import ExecutionOptions, Supervisor
from .run.errors import ExecutionError
from .testsets import input_path, testset_directory

log = logging.getLogger(__name__)


class GeneratorError(Exception):
    pass


def validate_script(commands: list[ScriptCommand], generators: list[str], problem_root: Path) -> None:
    """Check that a generator script only uses known generators and
    existing manual tests.

    Raises:
        GeneratorError on the first bad command.
    """
    for command in commands:
        if command.generator is not None and command.generator not in generators:
            raise GeneratorError(f'Generator "{command.generator}" not found in configuration. '
                                 f'Available generators: {", ".join(generators) or "none"}')
        if command.manual is not None and not (Path(problem_root) / command.manual).is_file():
            raise GeneratorError(f'Manual test file not found: {command.manual}')


async def generate_testset(supervisor: Supervisor, testset: TestsetConfig, commands: dict[str, str],
                           problem_root: Path, timeout: int = 10000, memory_limit: int = 1024) -> list[Path]:
    """Write the inputs of a testset, test<N>.txt for the N:th script command.

    Args:
        supervisor (Supervisor): supervisor to run generators with
        testset (TestsetConfig): testset with a generator script
        commands (dict): run command of each generator, by name
        problem_root (Path): root of the problem package
        timeout (int): time budget of one generator run, in ms
        memory_limit (int): memory budget of one generator run, in MB

    Returns:
        list of the paths written, in script order.
    """
    script = testset.generator_script or []
    validate_script(script, list(commands), problem_root)
    testset_directory(problem_root, testset.name).mkdir(parents=True, exist_ok=True)
    options = ExecutionOptions(timeout=timeout, memory_limit=memory_limit, silent=True)

    written = []
    for position, command in enumerate(script, start=1):
        target = input_path(problem_root, testset.name, position)
        if command.manual is not None:
            shutil.copyfile(Path(problem_root) / command.manual, target)
        else:
            cmdline = ('%s %s' % (commands[command.generator], command.args)).strip()
            try:
                await supervisor.execute_with_redirect(cmdline, options, outfile=target)
            except ExecutionError as err:
                supervisor.cleanup()
                raise GeneratorError(f'"{command}" failed for {testset.name} test {position}: {err}') from err
        log.debug('%s test %d: %s', testset.name, position, command)
        written.append(target)
    return written
