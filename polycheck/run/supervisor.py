"""
Supervised execution of external programs under a wall-clock timeout and
a memory ceiling.

Every request is spawned through the shell in a process group of its own,
and then raced against its timeout.  Whichever of the two finishes first
settles the request: a natural exit is classified from its exit status and
stderr, an expired timeout kills the whole process group.  The outcome is
returned as an ExecutionResult whose status the caller matches on; an
outcome the caller did not declare in ExecutionOptions.handles is raised
as the corresponding ExecutionError instead.

Each Supervisor keeps its own registry of live processes, so that
cleanup() can kill everything still running, e.g. when an enclosing step
fails.
"""
from __future__ import annotations

import asyncio
import logging
import signal
from dataclasses import dataclass
from enum import StrEnum

from .command import CommandBuilder, get_command_builder
from .errors import MemoryLimitExceeded, RuntimeFailure, SpawnFailure, TimeLimitExceeded

log = logging.getLogger(__name__)

TIMEOUT_EXIT_CODE = 124
OOM_KILL_EXIT_CODE = 137
ABORT_EXIT_CODE = 134
KILL_GRACE_PERIOD = 0.1
REAP_TIMEOUT = 1.0
OOM_MARKERS = ('bad_alloc', 'OutOfMemory', 'OOM', 'MemoryError')

_READ_CHUNK = 64 * 1024
_MEMORY_SIGNALS = frozenset([signal.SIGABRT])


class ExecutionStatus(StrEnum):
    SUCCESS = 'success'
    NON_ZERO_EXIT = 'non-zero exit'
    TIMED_OUT = 'timed out'
    MEMORY_EXCEEDED = 'memory exceeded'
    SPAWN_FAILED = 'spawn failed'


# Outcomes a judged program can legitimately end up in.
JUDGED_OUTCOMES = frozenset([ExecutionStatus.NON_ZERO_EXIT,
                             ExecutionStatus.TIMED_OUT,
                             ExecutionStatus.MEMORY_EXCEEDED])


@dataclass(frozen=True)
class ExecutionOptions:
    """How to run a command.

    timeout is in milliseconds, memory_limit in MB.  handles lists the
    non-success outcomes that the caller deals with itself; any other
    non-success outcome makes execute() raise.
    """

    timeout: int
    memory_limit: int | None = None
    cwd: str | None = None
    silent: bool = False
    handles: frozenset[ExecutionStatus] = frozenset()


@dataclass(frozen=True)
class ExecutionResult:
    stdout: str
    stderr: str
    exit_code: int
    status: ExecutionStatus
    signal: int | None = None

    @property
    def success(self) -> bool:
        return self.status is ExecutionStatus.SUCCESS

    @property
    def timed_out(self) -> bool:
        return self.status is ExecutionStatus.TIMED_OUT

    @property
    def memory_exceeded(self) -> bool:
        return self.status is ExecutionStatus.MEMORY_EXCEEDED


def is_memory_error(exit_code: int, sig: int | None, stderr: str) -> bool:
    """Best-effort detection of a program that ran out of memory.

    There is no kernel-level accounting behind this: a program is
    considered to have run out of memory if it was OOM-killed (137),
    aborted (134 or SIGABRT, e.g. an uncaught std::bad_alloc), or said so
    on stderr.
    """
    if abs(exit_code) in (OOM_KILL_EXIT_CODE, ABORT_EXIT_CODE):
        return True
    if sig in _MEMORY_SIGNALS:
        return True
    return any(marker in stderr for marker in OOM_MARKERS)


class _Run(object):
    """State of one request while it is in flight."""

    def __init__(self, process: asyncio.subprocess.Process) -> None:
        self.process = process
        self.stdout = bytearray()
        self.stderr = bytearray()
        self.resolved = False

    def settle(self) -> bool:
        """Claim the right to resolve the request.  Only the first caller wins."""
        if self.resolved:
            return False
        self.resolved = True
        return True

    def output(self) -> tuple[str, str]:
        return (self.stdout.decode('utf-8', 'replace'),
                self.stderr.decode('utf-8', 'replace'))


class Supervisor(object):
    """Runs shell commands under resource limits and keeps track of them."""

    def __init__(self, builder: CommandBuilder | None = None) -> None:
        self._builder = builder if builder is not None else get_command_builder()
        self._active: set[asyncio.subprocess.Process] = set()

    def __enter__(self) -> Supervisor:
        return self

    def __exit__(self, *exc) -> None:
        self.cleanup()

    @property
    def builder(self) -> CommandBuilder:
        return self._builder

    @property
    def active_count(self) -> int:
        return len(self._active)

    async def execute_with_redirect(self, command: str, options: ExecutionOptions,
                                    infile=None, outfile=None) -> ExecutionResult:
        """Like execute(), with stdin read from infile and stdout written to outfile."""
        return await self.execute(self._builder.redirect(command, infile, outfile), options)

    async def execute(self, command: str, options: ExecutionOptions) -> ExecutionResult:
        """Run command and wait for it to exit or time out.

        Args:
            command (str): shell command line
            options (ExecutionOptions): limits and outcome handling

        Returns:
            ExecutionResult, whose status is SUCCESS or one of
            options.handles.

        Raises:
            ExecutionError subclass for any other outcome.
        """
        cmdline = self._builder.build(command, options.memory_limit)
        log.debug('run "%s" (timeout %d ms)', cmdline, options.timeout)
        try:
            process = await asyncio.create_subprocess_shell(
                cmdline,
                stdin=asyncio.subprocess.DEVNULL,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
                cwd=options.cwd,
                **self._builder.spawn_kwargs())
        except OSError as err:
            log.debug('failed to spawn "%s": %s', cmdline, err)
            result = ExecutionResult(stdout='', stderr=str(err), exit_code=1,
                                     status=ExecutionStatus.SPAWN_FAILED)
            return self._dispatch(result, options)

        self._active.add(process)
        run = _Run(process)
        readers = [asyncio.create_task(_drain(process.stdout, run.stdout)),
                   asyncio.create_task(_drain(process.stderr, run.stderr))]
        completion = asyncio.create_task(_wait_for_exit(process, readers))
        delay = asyncio.create_task(asyncio.sleep(options.timeout / 1000.0))

        try:
            done, _ = await asyncio.wait([completion, delay],
                                         return_when=asyncio.FIRST_COMPLETED)
        except asyncio.CancelledError:
            completion.cancel()
            delay.cancel()
            self._kill(process)
            self._active.discard(process)
            raise

        if completion in done:
            result = self._complete(run, completion, delay)
        else:
            result = await self._expire(run, completion, options)
        return self._dispatch(result, options)

    def _complete(self, run: _Run, completion: asyncio.Task, delay: asyncio.Task) -> ExecutionResult:
        if not run.settle():
            raise RuntimeError('request resolved twice')
        delay.cancel()
        self._active.discard(run.process)
        returncode = completion.result()
        sig = -returncode if returncode < 0 else None
        exit_code = 1 if sig is not None else returncode
        stdout, stderr = run.output()

        if is_memory_error(exit_code, sig, stderr):
            status = ExecutionStatus.MEMORY_EXCEEDED
        elif exit_code == 0:
            status = ExecutionStatus.SUCCESS
        else:
            status = ExecutionStatus.NON_ZERO_EXIT
        return ExecutionResult(stdout=stdout, stderr=stderr, exit_code=exit_code,
                               status=status, signal=sig)

    async def _expire(self, run: _Run, completion: asyncio.Task, options: ExecutionOptions) -> ExecutionResult:
        if not run.settle():
            raise RuntimeError('request resolved twice')
        process = run.process
        log.debug('process %d timed out after %d ms, killing its process group',
                  process.pid, options.timeout)
        self._builder.kill_tree(process.pid)
        await asyncio.sleep(KILL_GRACE_PERIOD)
        self._kill(process)
        self._active.discard(process)
        # Once the group is dead its pipes are closed, so the completion
        # collects whatever output was still buffered in them and reaps.
        done, _ = await asyncio.wait([completion], timeout=REAP_TIMEOUT)
        if not done:
            log.warning('process %d did not terminate after being killed', process.pid)
            completion.cancel()

        stdout, _ = run.output()
        return ExecutionResult(stdout=stdout,
                               stderr=f'Command timed out after {options.timeout}ms',
                               exit_code=TIMEOUT_EXIT_CODE,
                               status=ExecutionStatus.TIMED_OUT)

    def _dispatch(self, result: ExecutionResult, options: ExecutionOptions) -> ExecutionResult:
        if not options.silent:
            _report(result, options)
        if result.success or result.status in options.handles:
            return result

        match result.status:
            case ExecutionStatus.NON_ZERO_EXIT:
                raise RuntimeFailure(f'Command failed with exit code {result.exit_code}\n{result.stderr}', result)
            case ExecutionStatus.TIMED_OUT:
                raise TimeLimitExceeded(f'Process killed after {options.timeout}ms timeout', result)
            case ExecutionStatus.MEMORY_EXCEEDED:
                raise MemoryLimitExceeded('Memory limit exceeded', result)
            case ExecutionStatus.SPAWN_FAILED:
                raise SpawnFailure(result.stderr, result)
        raise AssertionError(f'unknown execution status {result.status}')

    def _kill(self, process: asyncio.subprocess.Process) -> None:
        if process.returncode is not None:
            return
        try:
            process.kill()
        except ProcessLookupError:
            log.debug('process %d already terminated', process.pid)

    def cleanup(self) -> None:
        """Kill every process still running and forget about them.

        Safe to call any number of times, also when nothing is running.
        """
        for process in list(self._active):
            if process.returncode is None:
                try:
                    self._builder.kill_tree(process.pid)
                    process.kill()
                except OSError as err:
                    log.debug('failed to kill process %d: %s', process.pid, err)
        self._active.clear()


async def _drain(stream: asyncio.StreamReader, buffer: bytearray) -> None:
    while True:
        chunk = await stream.read(_READ_CHUNK)
        if not chunk:
            return
        buffer.extend(chunk)


async def _wait_for_exit(process: asyncio.subprocess.Process, readers: list[asyncio.Task]) -> int:
    # A process counts as finished once it has exited and both of its
    # output streams are closed.
    await asyncio.gather(*readers)
    return await process.wait()


def _report(result: ExecutionResult, options: ExecutionOptions) -> None:
    match result.status:
        case ExecutionStatus.SUCCESS:
            if result.stdout:
                log.debug('%s', result.stdout.strip())
        case ExecutionStatus.TIMED_OUT:
            log.warning('Process killed after %d ms timeout', options.timeout)
        case ExecutionStatus.MEMORY_EXCEEDED:
            log.warning('Process terminated: memory limit exceeded - exit code: %d, signal: %s',
                        result.exit_code, result.signal)
        case _:
            if result.stderr:
                log.warning('%s', result.stderr.strip())
