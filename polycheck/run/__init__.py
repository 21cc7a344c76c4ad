"""Package for preparing and supervising the external programs of a
problem package: solutions, generators, checkers and validators.
"""
import os

from .errors import (ExecutionError, MemoryLimitExceeded, ProgramError, RuntimeFailure,
                     SpawnFailure, TimeLimitExceeded)
from .executable import Executable
from .program import Program
from .source import DEFAULT_COMPILATION_TIME, SourceCode, program_files
from .supervisor import (ExecutionOptions, ExecutionResult, ExecutionStatus,
                         JUDGED_OUTCOMES, Supervisor)


def get_program(path, language_config=None, work_dir=None,
                compilation_time=DEFAULT_COMPILATION_TIME):
    """Get a Program object for a program

    Args:
        path (str): path of program.  Can be either a single file or a
            directory (in which case the program is considered to
            consist of all files and subdirectories in the path).

        language_config (polycheck.languages.Languages):
            language config, used for auto-detecting programming
            language of source code and providing info on how to
            compile and run the source code.

        work_dir (str): temp directory in which to compile programs etc

        compilation_time (int): compile time limit in seconds

    Returns:
        a Program instance, or None if no program was found at
        the given path.
    """
    if os.path.isfile(path):
        files = [path]
    elif os.path.isdir(path):
        files = program_files(path)
    else:
        return None

    if language_config is not None:
        lang = language_config.detect_language(files)
        if lang is not None:
            return SourceCode(path, lang, work_dir=work_dir,
                              compilation_time=compilation_time)
    if os.path.isfile(path) and os.access(path, os.X_OK):
        return Executable(path)
    return None
