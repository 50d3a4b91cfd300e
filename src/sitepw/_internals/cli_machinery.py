# SPDX-FileCopyrightText: 2025 Marco Ricci <software@the13thletter.info>
#
# SPDX-License-Identifier: Zlib


"""Command-line machinery for sitepw.

Warning:
    Non-public module (implementation detail), provided for didactical and
    educational purposes only. Subject to change without notice, including
    removal.

"""

from __future__ import annotations

import collections
import importlib.metadata
import logging
from typing import TYPE_CHECKING, Callable, Literal, TypeVar

import click
from typing_extensions import Any, ParamSpec

from sitepw import _internals, _types, generator, policy

if TYPE_CHECKING:
    import types
    from collections.abc import MutableSequence

    from typing_extensions import Self

PROG_NAME = _internals.PROG_NAME
VERSION = _internals.VERSION

# Error messages
NOT_AN_INTEGER = 'not an integer'
NOT_A_VALID_LENGTH = (
    f'not a length between {policy.MIN_LENGTH} and {policy.MAX_LENGTH}'
)
NOT_A_VALID_VERSION = f'not a version between 0 and {generator.MAX_VERSION}'
NOT_A_CHARSET_LIST = 'not a comma-separated list of character set names'


# Logging
# =======


class ClickEchoStderrHandler(logging.Handler):
    """A [`logging.Handler`][] for `click` applications.

    Outputs log messages to [`sys.stderr`][] via [`click.echo`][].

    """

    def emit(self, record: logging.LogRecord) -> None:
        """Emit a log record.

        Format the log record, then emit it via [`click.echo`][] to
        [`sys.stderr`][].

        """
        click.echo(
            self.format(record),
            err=True,
            color=getattr(record, 'color', None),
        )


class CLIofPackageFormatter(logging.Formatter):
    """A [`logging.LogRecord`][] formatter for the CLI of a Python package.

    Assuming a package `PKG` and loggers within the same hierarchy
    `PKG`, format all log records from that hierarchy for proper user
    feedback on the console.  Essentially, this prepends certain short
    strings to the log message lines to make them readable as standard
    error output.

    """

    def __init__(
        self,
        *,
        prog_name: str = PROG_NAME,
        package_name: str | None = None,
    ) -> None:
        self.prog_name = prog_name
        self.package_name = (
            package_name
            if package_name is not None
            else prog_name.lower().replace(' ', '_').replace('-', '_')
        )

    def format(self, record: logging.LogRecord) -> str:
        """Format a log record suitably for standard error console output.

        Prepend the formatted string `"PROG_NAME: LABEL"` to each line
        of the message, where `PROG_NAME` is the program name, and
        `LABEL` depends on the record's level:

          * For records at level [`logging.DEBUG`][], `LABEL` is
            `"Debug: "`.
          * For records at level [`logging.INFO`][], `LABEL` is the
            empty string.
          * For records at level [`logging.WARNING`][], `LABEL` is
            `"Warning: "`.
          * For records at level [`logging.ERROR`][] and
            [`logging.CRITICAL`][], `LABEL` is the empty string.

        Args:
            record: A log record.

        Returns:
            A formatted log record.

        Raises:
            AssertionError:
                The log level is not supported.

        """
        preliminary_result = record.getMessage()
        prefix = f'{self.prog_name}: '
        if record.levelname == 'DEBUG':
            level_indicator = 'Debug: '
        elif record.levelname == 'INFO':
            level_indicator = ''
        elif record.levelname == 'WARNING':
            level_indicator = f'{click.style("Warning", bold=True)}: '
        elif record.levelname in {'ERROR', 'CRITICAL'}:
            level_indicator = ''
        else:  # pragma: no cover [failsafe]
            msg = f'Unsupported logging level: {record.levelname}'
            raise AssertionError(msg)
        parts = [
            ''.join(
                prefix + level_indicator + line
                for line in preliminary_result.splitlines(True)  # noqa: FBT003
            )
        ]
        if record.exc_info:
            parts.append(self.formatException(record.exc_info) + '\n')
        return ''.join(parts)


class StandardCLILogging:
    """Set up CLI logging handlers upon instantiation."""

    prog_name = PROG_NAME
    package_name = PROG_NAME.lower().replace(' ', '_').replace('-', '_')
    cli_formatter = CLIofPackageFormatter(
        prog_name=prog_name, package_name=package_name
    )
    cli_handler = ClickEchoStderrHandler()
    cli_handler.addFilter(logging.Filter(name=package_name))
    cli_handler.setFormatter(cli_formatter)
    cli_handler.setLevel(logging.WARNING)

    @classmethod
    def ensure_standard_logging(cls) -> StandardLoggingContextManager:
        """Return a context manager to ensure standard logging is set up."""
        return StandardLoggingContextManager(
            handler=cls.cli_handler,
            root_logger=cls.package_name,
        )


class StandardLoggingContextManager:
    """A reentrant context manager setting up standard CLI logging.

    Ensures that the given handler is added to the named logger, and if
    it had to be added, then that it will be removed upon exiting the
    context.

    Reentrant, but not thread safe, because it temporarily modifies
    global state.

    """

    def __init__(
        self,
        handler: logging.Handler,
        root_logger: str | None = None,
    ) -> None:
        self.handler = handler
        self.root_logger_name = root_logger
        self.base_logger = logging.getLogger(self.root_logger_name)
        self.action_required: MutableSequence[bool] = collections.deque()

    def __enter__(self) -> Self:
        self.action_required.append(
            self.handler not in self.base_logger.handlers
        )
        if self.action_required[-1]:
            self.base_logger.addHandler(self.handler)
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc_value: BaseException | None,
        exc_tb: types.TracebackType | None,
    ) -> Literal[False]:
        if self.action_required[-1]:
            self.base_logger.removeHandler(self.handler)
        self.action_required.pop()
        return False


class TopLevelCLIEntryPoint(click.Group):
    """A [`click.Group`][] for the top-level command.

    When called as a function, this sets up the logging subsystem before
    invoking the actual callbacks.  The setup can be bypassed by
    calling the `.main` method directly.

    """

    def __call__(  # pragma: no cover [external-api]
        self,
        *args: Any,  # noqa: ANN401
        **kwargs: Any,  # noqa: ANN401
    ) -> Any:  # noqa: ANN401
        """"""  # noqa: D419
        # Coverage testing is done with the `click.testing` module,
        # which does not use the `__call__` shortcut.
        with StandardCLILogging.ensure_standard_logging():
            return self.main(*args, **kwargs)


P = ParamSpec('P')
R = TypeVar('R')


def adjust_logging_level(
    ctx: click.Context,
    /,
    param: click.Parameter | None = None,
    value: int | None = None,
) -> None:
    """Change the logs that are emitted to standard error.

    This modifies the [`StandardCLILogging`][] settings such that log
    records at the respective level are emitted, based on the `param`
    and the `value`.

    """
    # Note: If multiple options use this callback, then we will be
    # called multiple times, also for the options that were not given
    # (with a false value).  Ensure the runs are idempotent.
    if param is None or not value or ctx.resilient_parsing:
        return
    StandardCLILogging.cli_handler.setLevel(value)
    logging.getLogger(StandardCLILogging.package_name).setLevel(value)


# Option callbacks
# ================


def color_forcing_callback(
    ctx: click.Context,
    param: click.Parameter,
    value: Any,  # noqa: ANN401
) -> None:
    """Disable automatic color (and text highlighting).

    We use device-independent text output without any color or text
    styling whatsoever.

    """
    del param, value
    ctx.color = False


def _parse_int(value: Any) -> int:  # noqa: ANN401
    if isinstance(value, int):
        return value
    try:
        return int(value, 10)
    except ValueError as exc:
        raise click.BadParameter(NOT_AN_INTEGER) from exc


def validate_length(
    ctx: click.Context,
    param: click.Parameter,
    value: Any,  # noqa: ANN401
) -> int | None:
    """Check that the length is valid (int, between 1 and 128).

    This is only a shape check for early user feedback; the policy
    itself is checked by [`sitepw.policy.validate`][].

    Args:
        ctx: The `click` context.
        param: The current command-line parameter.
        value: The parameter value to be checked.

    Returns:
        The parsed parameter value.

    Raises:
        click.BadParameter: The parameter value is invalid.

    """
    del ctx  # Unused.
    del param  # Unused.
    if value is None:
        return value
    int_value = _parse_int(value)
    if not policy.MIN_LENGTH <= int_value <= policy.MAX_LENGTH:
        raise click.BadParameter(NOT_A_VALID_LENGTH)
    return int_value


def validate_version(
    ctx: click.Context,
    param: click.Parameter,
    value: Any,  # noqa: ANN401
) -> int:
    """Check that the version is an unsigned 32-bit integer."""
    del ctx, param
    int_value = _parse_int(value)
    if not 0 <= int_value <= generator.MAX_VERSION:
        raise click.BadParameter(NOT_A_VALID_VERSION)
    return int_value


def validate_charsets(
    ctx: click.Context,
    param: click.Parameter,
    value: Any,  # noqa: ANN401
) -> frozenset[_types.Charset] | None:
    """Parse a comma-separated list of character set names.

    Names are matched case-insensitively, and surrounding whitespace is
    ignored.  An empty list is valid.

    Raises:
        click.BadParameter: A name is unknown.

    """
    del ctx, param
    if value is None:
        return None
    try:
        return _types.charset_frozenset(value)
    except ValueError as exc:
        raise click.BadParameter(NOT_A_CHARSET_LIST) from exc


def common_version_output(
    ctx: click.Context,
    param: click.Parameter,
    value: bool,  # noqa: FBT001
) -> None:
    del param, value
    major_dependencies = [
        f'{name} {importlib.metadata.version(name)}'
        for name in ('argon2-cffi', 'cryptography', 'click')
    ]
    click.echo(
        ' '.join([
            click.style(PROG_NAME, bold=True),
            VERSION,
        ]),
        color=ctx.color,
    )
    for dependency in major_dependencies:
        click.echo(f'Using {dependency}.', color=ctx.color)


def sitepw_version_option_callback(
    ctx: click.Context,
    param: click.Parameter,
    value: bool,  # noqa: FBT001
) -> None:
    if value and not ctx.resilient_parsing:
        common_version_output(ctx, param, value)
        ctx.exit()


def version_option(
    version_option_callback: Callable[
        [click.Context, click.Parameter, Any], Any
    ],
) -> Callable[[Callable[P, R]], Callable[P, R]]:
    return click.option(
        '--version',
        is_flag=True,
        is_eager=True,
        expose_value=False,
        callback=version_option_callback,
        help='Show the version and exit.',
    )


color_forcing_pseudo_option = click.option(
    '--_pseudo-option-color-forcing',
    '_color_forcing',
    is_flag=True,
    is_eager=True,
    expose_value=False,
    hidden=True,
    callback=color_forcing_callback,
    help='(pseudo-option)',
)


debug_option = click.option(
    '--debug',
    'logging_level',
    is_flag=True,
    flag_value=logging.DEBUG,
    expose_value=False,
    callback=adjust_logging_level,
    help='Also emit debug information.  Implies --verbose.',
)
verbose_option = click.option(
    '-v',
    '--verbose',
    'logging_level',
    is_flag=True,
    flag_value=logging.INFO,
    expose_value=False,
    callback=adjust_logging_level,
    help='Emit extra/progress information to standard error.',
)
quiet_option = click.option(
    '-q',
    '--quiet',
    'logging_level',
    is_flag=True,
    flag_value=logging.ERROR,
    expose_value=False,
    callback=adjust_logging_level,
    help='Suppress even warnings; emit only errors.',
)


def standard_logging_options(f: Callable[P, R]) -> Callable[P, R]:
    """Decorate the function with standard logging click options.

    Adds the three click options `-v`/`--verbose`, `-q`/`--quiet` and
    `--debug`, which calls back into the [`adjust_logging_level`][]
    function (with different argument values).

    Args:
        f: A callable to decorate.

    Returns:
        The decorated callable.

    """
    return debug_option(verbose_option(quiet_option(f)))
