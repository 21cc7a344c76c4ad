"""
Platform-specific construction of the shell command lines handed to the
supervisor.

All quoting, path-separator rewriting and memory-limit wrapping lives
here, behind one CommandBuilder per platform.  The builder for the running
platform is picked once, by get_command_builder().
"""
import logging
import os
import re
import shlex
import signal
import subprocess
import sys

log = logging.getLogger(__name__)

# JVM launchers, and how each of them is handed a maximum heap size.
_JVM_LAUNCHERS = {
    'java': '-Xmx{memlim}m',
    'kotlin': '-J-Xmx{memlim}m',
}
_JVM_RE = re.compile(r'^(\s*)(' + '|'.join(_JVM_LAUNCHERS) + r')(\s+)')
_EXECUTABLE_RE = re.compile(r'^(?:"([^"]+)"|([^\s<>|]+))(.*)$', re.DOTALL)


class CommandBuilder(object):
    """Base class, implementing the parts that are the same everywhere."""

    # Whether a program running past its memory limit is stopped, rather
    # than only recognised afterwards from how it exited.
    enforces_memory_limit = False

    def apply_memory_limit(self, command: str, memlim: int | None) -> str:
        """Rewrite command so that it runs with a memory ceiling of memlim MB.

        JVMs reserve far more virtual address space than they ever touch,
        so for them the limit is passed as a heap size instead.
        """
        if not memlim:
            return command
        match = _JVM_RE.match(command)
        if match is not None:
            heap = _JVM_LAUNCHERS[match.group(2)].format(memlim=memlim)
            return f'{match.group(0)}{heap} {command[match.end():]}'
        return self._limit_native(command, memlim)

    def _limit_native(self, command: str, memlim: int) -> str:
        return command

    def normalize(self, command: str) -> str:
        return command

    def quote_path(self, path: str) -> str:
        return shlex.quote(path)

    def redirect(self, command: str, infile=None, outfile=None) -> str:
        if infile:
            command = f'{command} < {self.quote_path(str(infile))}'
        if outfile:
            command = f'{command} > {self.quote_path(str(outfile))}'
        return command

    def build(self, command: str, memlim: int | None = None) -> str:
        return self.normalize(self.apply_memory_limit(command, memlim))

    def spawn_kwargs(self) -> dict:
        return {}

    def kill_tree(self, pid: int) -> None:
        raise NotImplementedError


class PosixCommandBuilder(CommandBuilder):
    """Wraps native programs in a subshell with a virtual memory ulimit."""

    enforces_memory_limit = True

    def _limit_native(self, command, memlim):
        return f'(ulimit -v {memlim * 1024}; {command})'

    def spawn_kwargs(self):
        from . import limit
        # New session => new process group with pgid == pid, so that
        # everything the judged program forks can be killed in one go.
        return {'start_new_session': True, 'preexec_fn': limit.prepare_child}

    def kill_tree(self, pid):
        try:
            os.killpg(pid, signal.SIGKILL)
        except OSError:
            try:
                os.kill(pid, signal.SIGKILL)
            except ProcessLookupError:
                log.debug('process %d already terminated', pid)


class DarwinCommandBuilder(PosixCommandBuilder):
    """macOS does not honour RLIMIT_AS, so memory use is only detected
    after the fact from the exit status and stderr of the program."""

    enforces_memory_limit = False

    def _limit_native(self, command, memlim):
        return command


class WindowsCommandBuilder(CommandBuilder):
    """No per-process memory ceiling is available from cmd.exe, so memory
    use is only detected after the fact."""

    def normalize(self, command):
        match = _EXECUTABLE_RE.match(command)
        if match is None:
            return command
        quoted = match.group(1) is not None
        executable = (match.group(1) if quoted else match.group(2)).strip()
        rest = match.group(3)
        if executable.startswith('./'):
            executable = '.\\' + executable[2:]
        executable = executable.replace('/', '\\')
        if quoted:
            executable = f'"{executable}"'
        return executable + rest

    def quote_path(self, path):
        if path.startswith('./'):
            path = '.\\' + path[2:]
        elif path.startswith('../'):
            path = '..\\' + path[3:]
        return '"%s"' % path.replace('/', '\\')

    def spawn_kwargs(self):
        return {'creationflags': getattr(subprocess, 'CREATE_NEW_PROCESS_GROUP', 0x200)}

    def kill_tree(self, pid):
        subprocess.run(['taskkill', '/pid', str(pid), '/T', '/F'],
                       stdout=subprocess.DEVNULL, stderr=subprocess.DEVNULL, check=False)


def is_jvm_command(command: str) -> bool:
    return _JVM_RE.match(command) is not None


def get_command_builder(platform: str | None = None) -> CommandBuilder:
    """Get the command builder for a platform (default: the running one).

    Args:
        platform (str): value in the format of sys.platform.
    """
    if platform is None:
        platform = sys.platform
    if platform.startswith('win'):
        return WindowsCommandBuilder()
    if platform == 'darwin':
        return DarwinCommandBuilder()
    return PosixCommandBuilder()


def apply_memory_limit(command: str, memlim: int | None) -> str:
    """Memory-limit a command using the builder for the running platform."""
    return get_command_builder().apply_memory_limit(command, memlim)
