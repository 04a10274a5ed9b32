import functools
import click
import sys
from .cli_logger import logger
from .errors import FFDroidError, BuildError

LOG_TAIL_LINES = 200

def dump_diagnostics(error):
    """Print the tails of the logs attached to a failed step."""
    if isinstance(error, BuildError):
        for path in error.log_paths:
            logger.dump_tail(path, lines=LOG_TAIL_LINES, title=f"Tail of {path}")

def handle_exceptions(func):
    """A decorator that reports pipeline failures and exits non-zero."""
    @functools.wraps(func)
    def wrapper(*args, **kwargs):
        try:
            return func(*args, **kwargs)
        except click.Abort:
            logger.warning("\nCommand aborted by user.")
            sys.exit(130)
        except FFDroidError as e:
            logger.error(e.format_message())
            dump_diagnostics(e)
            sys.exit(e.exit_code)
        except click.ClickException:
            raise
        except Exception as e:
            logger.error(f"\nAn unexpected error occurred: {e}")
            logger.exception(*sys.exc_info())
            sys.exit(1)
    return wrapper
