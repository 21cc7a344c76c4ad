"""
Programs of a problem package that are already executable, such as
interpreter scripts with a shebang line.
"""
import os
import shlex
from pathlib import Path

from .errors import ProgramError
from .program import Program


class Executable(Program):
    def __init__(self, path, args=None):
        """
        Args:
            path (str): an executable file.
            args: arguments passed on every run, after the program.
        """
        super().__init__()

        if not os.path.isfile(path) or not os.access(path, os.X_OK):
            raise ProgramError(f'{path} is not an executable program')
        self.path = Path(os.path.abspath(path))
        self.name = self.path.name
        self.args = list(args or [])

    def __str__(self):
        return self.name

    def get_runcmd(self, cwd=None):
        target = str(self.path) if cwd is None else os.path.relpath(self.path, cwd)
        # The shell only looks a bare name up on PATH.
        if os.sep not in target:
            target = os.curdir + os.sep + target
        return shlex.join([target, *self.args])
