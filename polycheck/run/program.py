"""Abstract base class for programs.
"""
import logging
import threading

log = logging.getLogger(__name__)


class Program(object):
    """Abstract base class for programs.

    A program is not run directly: get_runcmd() gives the shell command
    line which is handed to a Supervisor, which applies the time and
    memory limits.
    """

    def __init__(self) -> None:
        self._compile_lock = threading.Lock()
        self._compile_result: tuple[bool, str|None]|None = None

    def compile(self) -> tuple[bool, str|None]:
        """Compile the program, if needed.  Only the first call does any work.

        Returns tuple:
            (True, None) if compilation succeeded
            (False, errmsg) otherwise
        """
        with self._compile_lock:
            if self._compile_result is None:
                self._compile_result = self.do_compile()
                if not self._compile_result[0]:
                    log.debug('compilation of %s failed', self)
            return self._compile_result

    def do_compile(self) -> tuple[bool, str|None]:
        """Actually compile the program, if needed. Subclasses should override this method.
        Do not call this manually -- use compile() instead."""
        return (True, None)

    def get_runcmd(self, cwd: str|None = None) -> str:
        """Shell command line that runs the program."""
        raise NotImplementedError
