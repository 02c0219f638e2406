from contextlib import contextmanager
import logging

from rich.console import Console
from rich.logging import RichHandler
from rich.markup import escape
import typer

from ..errors import CacheError
from .settings import APP_NAME, logger

console = Console(stderr=True)
# general rule: this logger is used for internal logs only.
logger.addHandler(
    RichHandler(
        level=logging.DEBUG,
        markup=False,
        show_path=False,
        console=console,
        log_time_format=r"[%X]",
    )
)
logger.setLevel(logging.INFO)
logger.propagate = False

pre_tag = rf"[cyan]\[{APP_NAME}][/cyan]"


def set_verbosity(verbose: bool):
    logger.setLevel(logging.DEBUG if verbose else logging.INFO)


def user_info(*args, **kwargs):
    """Use this to print info that we can reasonably expect the user will want to see.

    We use this instead of logger.info because these are more messages.
    And we want to include fancy rich formatting."""
    console.print(pre_tag, *args, **kwargs)


@contextmanager
def reporting_errors():
    """Report CacheErrors to the user and exit with the error's exit code."""
    try:
        yield
    except CacheError as err:
        console.print(pre_tag, rf"[red]error\[{err.kind}][/]:", escape(str(err)))
        raise typer.Exit(code=err.exit_code) from err
