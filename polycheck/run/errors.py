"""Exceptions raised when preparing or running external programs."""


class ProgramError(Exception):
    pass


class ExecutionError(ProgramError):
    """An execution outcome that the caller did not declare it handles.

    The full ExecutionResult is kept in the `result` attribute, so that
    the caller can still inspect captured output.
    """

    def __init__(self, message, result):
        super().__init__(message)
        self.result = result


class SpawnFailure(ExecutionError):
    pass


class RuntimeFailure(ExecutionError):
    pass


class TimeLimitExceeded(ExecutionError):
    pass


class MemoryLimitExceeded(ExecutionError):
    pass
