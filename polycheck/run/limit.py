"""
Module for dealing with resource limits of judged programs on POSIX.

The memory ceiling itself is requested by the command builder (see
command.py); this module only makes sure that the rlimits inherited from
the polycheck process do not get in the way.
"""

import resource
import signal


def check_limit_capabilities(logger, memlim=None):
    """Check if the polycheck process is run with rlimits that will
    interfere with the limits of judged programs, and if so, issue warnings.

    Params:
        logger: object to issue warnings to (by calling 'warning' method)
        memlim: memory limit in MB that judged programs will be run with
    """
    (_, stack_hard) = resource.getrlimit(resource.RLIMIT_STACK)
    if stack_hard != resource.RLIM_INFINITY:
        logger.warning("Hard stack rlimit of %d so I can't set it to unlimited. If you experience unexpected run-time errors this may be the cause."
                       % stack_hard)

    (_, mem_hard) = resource.getrlimit(resource.RLIMIT_AS)
    if mem_hard != resource.RLIM_INFINITY:
        if memlim is None or not __limit_less(memlim * 1024**2, mem_hard):
            logger.warning("Hard memory rlimit of %.0f MB, runs with a higher memory limit will be reported as memory limit exceeded early."
                           % (mem_hard/1024.0/1024.0))


def prepare_child():
    """Pre-exec hook for judged programs.

    The Python interpreter sets some signal dispositions to SIG_IGN
    (notably SIGPIPE), and unless they are reset they leak through to the
    program we exec, which then does not crash as expected when writing
    to a closed pipe.
    """
    for name in ('SIGPIPE', 'SIGXFSZ'):
        if hasattr(signal, name):
            signal.signal(getattr(signal, name), signal.SIG_DFL)
    try_limit(resource.RLIMIT_STACK, resource.RLIM_INFINITY, resource.RLIM_INFINITY)


def try_limit(limit, soft, hard):
    """Attempt to set an rlimit, but caps it at the current hard limit for
    the resource (instead of failing like a call to resource.setrlimit
    would).

    Params:
        limit: resource to limit (e.g. resource.RLIMIT_STACK)
        soft: soft limit
        hard: hard limit
    """
    (_, cur_hard) = resource.getrlimit(limit)
    if not __limit_less(soft, cur_hard):
        soft = cur_hard
    if not __limit_less(hard, cur_hard):
        hard = cur_hard
    resource.setrlimit(limit, (soft, hard))


def __limit_less(lim1, lim2):
    """Helper function for comparing two rlimit values, handling "unlimited" correctly.

    Params:
        lim1 (integer): first rlimit
        lim2 (integer): second rlimit

    Returns:
        true if lim1 <= lim2
    """
    if lim2 == resource.RLIM_INFINITY:
        return True
    if lim1 == resource.RLIM_INFINITY:
        return False
    return lim1 <= lim2
