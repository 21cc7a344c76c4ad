"""
Implementation of programs provided by source code.
"""
import logging
import os
import re
import shlex
import shutil
import subprocess
import tempfile
from pathlib import Path

from .errors import ProgramError
from .program import Program

log = logging.getLogger(__name__)

DEFAULT_COMPILATION_TIME = 10


class SourceCode(Program):
    """Class representing a program provided by source code.
    """
    def __init__(self, path, language, work_dir=None, compilation_time=DEFAULT_COMPILATION_TIME):
        """Instantiate SourceCode object

        Args:
            path (str): path of source code.  Can be either a single
                file or a directory (in which case the program is
                considered to consist of all files and subdirectories
                in the path).

            language (polycheck.languages.Language): language
                definition for the programming language of the code.

            work_dir (str): temp directory in which to compile programs
                etc

            compilation_time (int): compile time limit in seconds
        """
        super().__init__()

        path = path.rstrip('/')
        self.name = os.path.splitext(os.path.basename(path))[0]
        self.language = language
        self.compilation_time = compilation_time

        if work_dir is None:
            work_dir = tempfile.mkdtemp()
        self.path = os.path.join(work_dir, self.name)
        if os.path.exists(self.path):
            self.path = tempfile.mkdtemp(prefix='%s-' % self.name, dir=work_dir)
        else:
            os.makedirs(self.path)

        _copy_program(path, self.path)

        self.src = self.language.get_source_files(program_files(self.path))
        if len(self.src) == 0:
            raise ProgramError('No source files found for language %s in %s'
                               % (self.language.lang_id, self.name))

        self.mainfile = next((x for x in self.src
                              if re.match(r'^main\.', os.path.basename(x), re.IGNORECASE)),
                             self.src[0])
        self.mainclass = os.path.splitext(os.path.basename(self.mainfile))[0]
        self.Mainclass = self.mainclass[0].upper() + self.mainclass[1:]
        self.binary = os.path.join(self.path, 'run')

    def do_compile(self):
        if self.language.compile is None:
            return (True, None)

        command = self.get_compilecmd()
        if shutil.which(command[0]) is None:
            return (False, '%s does not seem to be installed, could not find compiler %s'
                    % (self.language.name, command[0]))

        log.debug('compile command: %s', command)
        try:
            subprocess.run(command, stdout=subprocess.PIPE, stderr=subprocess.STDOUT,
                           cwd=self.path, timeout=self.compilation_time, check=True)
        except subprocess.TimeoutExpired:
            return (False, 'Compilation of %s timed out after %d s' % (self, self.compilation_time))
        except subprocess.CalledProcessError as err:
            return (False, err.output.decode('utf8', 'replace'))
        return (True, None)

    def get_compilecmd(self):
        return shlex.split(self.language.compile.format(**self.__get_substitution()))

    def get_runcmd(self, cwd=None):
        """Run command for the program.

        Args:
            cwd (str): if not None, the run command is provided
                relative to cwd (otherwise absolute paths are given).
        """
        subs = self.__get_substitution(cwd)
        return self.language.run.format(**subs)

    def __str__(self):
        return '%s (%s)' % (self.name, self.language.name)

    def __get_substitution(self, cwd=None):
        def path(p):
            return shlex.quote(p if cwd is None else os.path.relpath(p, cwd))

        return {
            'path': path(self.path),
            'files': ' '.join(path(x) for x in self.src),
            'mainfile': path(self.mainfile),
            'mainclass': self.mainclass,
            'Mainclass': self.Mainclass,
            'binary': path(self.binary),
        }


def program_files(path):
    """The files a program consists of, sorted: path itself if it is a
    file, otherwise every file below it."""
    if os.path.isfile(path):
        return [path]
    return sorted(str(p) for p in Path(path).rglob('*') if p.is_file())


def _copy_program(src, dstdir):
    # A directory is copied by content, so that its files end up directly
    # in dstdir.
    try:
        if os.path.isfile(src):
            shutil.copy(src, dstdir)
        else:
            shutil.copytree(src, dstdir, dirs_exist_ok=True)
    except FileNotFoundError as exc:
        raise ProgramError(f'Cannot copy program {src}: {exc.filename} not found')
