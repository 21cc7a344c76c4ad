import argparse
from importlib import metadata


def add_version_arg(parser: argparse.ArgumentParser) -> None:
    """Adds the --version argument to the parser"""
    # Fall back to "unknown" when running from a checkout that was never installed.
    try:
        version = metadata.version('polycheck')
    except metadata.PackageNotFoundError:
        version = 'unknown'

    parser.add_argument('--version', action='version', version=f'%(prog)s {version}')
