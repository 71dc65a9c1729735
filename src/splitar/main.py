#!/usr/bin/env python3
"""
Content-aware splitting of tar archives into size-bounded volumes
"""

import argparse
import logging
import os
import signal
import sys

from . import __version__
from .cancel import CancellationToken
from .config import DEFAULT_SUFFIX_LENGTH, SplitOptions, parse_size
from .errors import IoFailure, SplitarError
from .splitter import split_archive

logger = logging.getLogger(__name__)

LOG_LEVEL_ENV = "SPLITAR_LOG"
DEFAULT_LOG_LEVEL = "WARNING"
LOG_LEVELS = ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]


def size_argument(value):
    try:
        return parse_size(value)
    except ValueError as exc:
        raise argparse.ArgumentTypeError(str(exc))


def build_parser():
    parser = argparse.ArgumentParser(
        prog='splitar',
        description='Split a tar archive into size-bounded volumes',
        epilog='''
Examples:
  # 4 GiB volumes named backup.tar.00000, backup.tar.00001, ...
  %(prog)s -S 4G backup.tar backup.tar.

  # Read from stdin, recreate directories in every volume, compress each one
  tar c /data | %(prog)s -S 100M -d --compress 'zstd -q' - /backup/data.tar.zst.

  # List every header written, prefixed with its volume number
  %(prog)s -S 700M -v backup.tar cd/backup.tar.
        ''',
        formatter_class=argparse.RawDescriptionHelpFormatter
    )
    parser.add_argument('-S', '--max-size', required=True, type=size_argument,
                        help='max data size per output volume (binary units: 100K, 4G)')
    parser.add_argument('--fail-on-large-file', action='store_true',
                        help='fail if a file is too large to fit into single volume')
    parser.add_argument('-v', '--verbose', action='store_true',
                        help='output files info prefixed with volume number')
    parser.add_argument('-d', '--recreate-dirs', action='store_true',
                        help='recreate dirs in new volumes')
    parser.add_argument('--compress', metavar='CMD',
                        help='shell command each volume is piped through, e.g. "gzip"')
    parser.add_argument('-a', '--suffix-length', type=int, default=DEFAULT_SUFFIX_LENGTH,
                        help=f'digits in the volume number suffix (default: {DEFAULT_SUFFIX_LENGTH})')
    parser.add_argument('--progress', action='store_true',
                        help='show a progress bar')
    parser.add_argument('--log-level', choices=LOG_LEVELS, type=str.upper,
                        help=f'logging level (default: ${LOG_LEVEL_ENV} or {DEFAULT_LOG_LEVEL})')
    parser.add_argument('--version', action='version', version=f'%(prog)s {__version__}')
    parser.add_argument('input_file', help='input file path or `-` for stdin')
    parser.add_argument('output_prefix', help='volume path prefix; the volume number is appended')
    return parser


def configure_logging(level=None):
    level = (level or os.environ.get(LOG_LEVEL_ENV) or DEFAULT_LOG_LEVEL).upper()
    if level not in LOG_LEVELS:
        level = DEFAULT_LOG_LEVEL
    logging.basicConfig(level=getattr(logging, level), format='%(asctime)s - %(levelname)s - %(message)s')


def install_signal_handlers(token):
    """Make SIGINT/SIGTERM cancel the run; return the handlers they replaced."""
    previous = {}
    for signum in (signal.SIGINT, signal.SIGTERM):
        try:
            previous[signum] = signal.signal(signum, token.cancel)
        except (OSError, ValueError) as e:
            logger.error(f"failed to set {signal.Signals(signum).name} handler: {e}. Ignoring...")
    return previous


def restore_signal_handlers(previous):
    for signum, handler in previous.items():
        signal.signal(signum, handler)


def format_error(error):
    message = str(error)
    if error.__cause__ is not None:
        message = f"{message}: {error.__cause__}"
    return message


def print_error(error, stream=None):
    stream = stream or sys.stderr
    if stream.isatty():
        prefix = "\033[1;31merror:\033[0m"
    else:
        prefix = "error:"
    print(f"{prefix} {format_error(error)}", file=stream)


def options_from_args(args):
    return SplitOptions(
        output_prefix=args.output_prefix,
        max_size=args.max_size,
        fail_on_large_file=args.fail_on_large_file,
        recreate_dirs=args.recreate_dirs,
        compress=args.compress,
        suffix_length=args.suffix_length,
        verbose=args.verbose,
    )


def run(args, options, token):
    if args.input_file == '-':
        return split_archive(sys.stdin.buffer, options, token=token, progress=args.progress)
    try:
        input_file = open(args.input_file, 'rb')
    except OSError as e:
        raise IoFailure(f"failed to open input file {args.input_file}") from e
    with input_file:
        return split_archive(input_file, options, token=token, progress=args.progress)


def main(argv=None):
    parser = build_parser()
    args = parser.parse_args(argv)

    configure_logging(args.log_level)
    logger.debug(f"Args: {args}")

    options = options_from_args(args)
    try:
        options.validate()
    except ValueError as e:
        parser.error(str(e))

    token = CancellationToken()
    previous_handlers = install_signal_handlers(token)
    try:
        published = run(args, options, token)
    except SplitarError as e:
        logger.debug("Split failed", exc_info=True)
        print_error(e)
        return e.exit_code
    finally:
        restore_signal_handlers(previous_handlers)

    for path in published:
        logger.info(f"Published {path}")
    return 0


if __name__ == '__main__':
    sys.exit(main())
