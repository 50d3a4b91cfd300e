# SPDX-FileCopyrightText: 2025 Marco Ricci <software@the13thletter.info>
#
# SPDX-License-Identifier: Zlib

"""Helper functions for the sitepw command-line.

Warning:
    Non-public module (implementation detail), provided for didactical and
    educational purposes only. Subject to change without notice, including
    removal.

"""

from __future__ import annotations

import json
import os
import pathlib
import sys
from typing import TYPE_CHECKING, TextIO, cast

import click
from typing_extensions import Any

from sitepw import _internals, _types, policy

if sys.version_info >= (3, 11):
    import tomllib
else:
    import tomli as tomllib

if TYPE_CHECKING:
    from collections.abc import Iterable

__all__ = ()

PROG_NAME = _internals.PROG_NAME
CONFIG_FILENAME = 'config.toml'
ALGO_VERSION = 1
"""The version of the derivation scheme, as reported in JSON output."""

_GENERATE_INT_KEYS = frozenset({'min', 'max'})
_GENERATE_CHARSET_KEYS = frozenset({'allow', 'force'})
_GENERATE_STR_KEYS = frozenset({'username'})


# Configuration
# =============


def config_dir() -> pathlib.Path:
    """Return the configuration directory.

    This is the `SITEPW_PATH` environment variable if set, else the
    directory given by [`click.get_app_dir`][] in POSIX mode.

    """
    return pathlib.Path(
        os.getenv(PROG_NAME.upper() + '_PATH')
        or click.get_app_dir(PROG_NAME, force_posix=True)
    )


def config_filename() -> pathlib.Path:
    """Return the filename of the user configuration file."""
    return config_dir() / CONFIG_FILENAME



def load_user_config() -> dict[str, Any]:
    """Load the user config from the application directory.

    The filename is obtained via [`config_filename`][].  A missing file
    yields an empty configuration.

    Returns:
        The user configuration, as a nested `dict`.

    Raises:
        OSError:
            There was an OS error accessing the file.
        ValueError:
            The data loaded from the file is not a valid TOML file.

    """
    filename = config_filename()
    try:
        with filename.open('rb') as fileobj:
            return tomllib.load(fileobj)
    except FileNotFoundError:
        return {}


def generate_defaults(config: dict[str, Any], /) -> dict[str, Any]:
    """Extract and check the `[generate]` defaults from a user config.

    Args:
        config: The user configuration, as loaded by [`load_user_config`][].

    Returns:
        The known `generate` settings, with charset lists converted to
        frozensets of [`Charset`][sitepw._types.Charset] members.

    Raises:
        ValueError:
            The `generate` table, or one of its settings, has the wrong
            type, or names an unknown character set.

    """
    table = config.get('generate', {})
    if not isinstance(table, dict):
        msg = 'generate: not a table'
        raise ValueError(msg)  # noqa: TRY004
    result: dict[str, Any] = {}
    for key, value in table.items():
        if key in _GENERATE_INT_KEYS:
            if isinstance(value, bool) or not isinstance(value, int):
                msg = f'generate.{key}: not an integer'
                raise ValueError(msg)
            result[key] = value
        elif key in _GENERATE_CHARSET_KEYS:
            if isinstance(value, str) or not isinstance(value, list):
                msg = f'generate.{key}: not a list of character set names'
                raise ValueError(msg)
            result[key] = _types.charset_frozenset(value)
        elif key in _GENERATE_STR_KEYS:
            if not isinstance(value, str):
                msg = f'generate.{key}: not a string'
                raise ValueError(msg)  # noqa: TRY004
            result[key] = value
        else:
            msg = f'generate.{key}: unknown setting'
            raise ValueError(msg)
    return result


# Secret input
# ============


def prompt_for_secret() -> str:
    """Interactively prompt for the master secret.

    Calls [`click.prompt`][] internally.  Moved into a separate function
    mainly for testing/mocking purposes.

    Returns:
        The user input.

    """
    return cast(
        'str',
        click.prompt(
            'Master secret',
            default='',
            hide_input=True,
            show_default=False,
            err=True,
        ),
    )


def read_secret_from_stdin(stream: TextIO | None = None, /) -> str:
    r"""Read the master secret from standard input.

    Read everything.  If the input ends in a newline, then strip all
    trailing line terminators (`\n` and `\r`).  Other whitespace is
    part of the secret.

    Examples:
        >>> import io
        >>> read_secret_from_stdin(io.StringIO(' s3cret \r\n\n'))
        ' s3cret '
        >>> read_secret_from_stdin(io.StringIO('s3cret\r'))
        's3cret\r'

    """
    if stream is None:
        stream = click.get_text_stream('stdin')
    secret = stream.read()
    if secret.endswith('\n'):
        secret = secret.rstrip('\r\n')
    return secret


# Policy assembly
# ===============


def length_bounds(
    length: int | None,
    min_length: int | None,
    max_length: int | None,
    /,
    *,
    defaults: dict[str, Any],
) -> tuple[int, int]:
    """Determine the length bounds from options and config defaults.

    A fixed length overrides both bounds.  Otherwise, command-line
    bounds override configured ones, which override the built-in
    defaults.

    Examples:
        >>> length_bounds(20, 8, None, defaults={})
        (20, 20)
        >>> length_bounds(None, None, 30, defaults={'min': 10})
        (10, 30)

    """
    if length is not None:
        return length, length
    default = policy.default_policy()
    if min_length is None:
        min_length = defaults.get('min', default.min)
    if max_length is None:
        max_length = defaults.get('max', default.max)
    return cast('int', min_length), cast('int', max_length)


def fold_charsets(
    allow: Iterable[_types.Charset | str] | None,
    force: Iterable[_types.Charset | str] | None,
    /,
    *,
    excluded: Iterable[_types.Charset] = (),
    defaults: dict[str, Any],
) -> tuple[frozenset[_types.Charset], frozenset[_types.Charset]]:
    """Determine the allowed and forced character sets.

    Command-line lists override configured ones.  Sets excluded via
    the `--no-*` options are then removed from the allowed sets (but
    not from the forced sets, so that contradictions are reported by
    the policy validator).

    Raises:
        ValueError: A character set name is unknown.

    Examples:
        >>> a, f = fold_charsets(
        ...     None, 'digit', excluded=[_types.Charset.SYMBOL], defaults={}
        ... )
        >>> sorted(c.value for c in a), sorted(c.value for c in f)
        (['digit', 'lower', 'upper'], ['digit'])

    """
    allowed = (
        _types.charset_frozenset(allow)
        if allow is not None
        else defaults.get('allow', frozenset(_types.Charset))
    )
    forced = (
        _types.charset_frozenset(force)
        if force is not None
        else defaults.get('force', frozenset())
    )
    return allowed - frozenset(excluded), forced


# Output
# ======


def render_json(
    password: str,
    *,
    site: str,
    username: str | None,
    version: int,
    canonical_policy: _types.CanonicalPolicy,
) -> str:
    """Render the password and its derivation parameters as JSON.

    Examples:
        >>> p = policy.validate(policy.make_policy(4, 4, 'digit'))
        >>> print(
        ...     render_json(
        ...         '1234',
        ...         site='example.com',
        ...         username=None,
        ...         version=1,
        ...         canonical_policy=p,
        ...     )
        ... )  # doctest: +NORMALIZE_WHITESPACE
        {"password": "1234", "length": 4, "site": "example.com",
         "username": "", "version": 1,
         "policy": "min=4;max=4;allow=digit;force=", "algo_version": 1}

    """
    return json.dumps(
        {
            'password': password,
            'length': len(password),
            'site': site,
            'username': username or '',
            'version': version,
            'policy': policy.encode(canonical_policy),
            'algo_version': ALGO_VERSION,
        },
        ensure_ascii=False,
    )
