# SPDX-FileCopyrightText: 2025 Marco Ricci <software@the13thletter.info>
#
# SPDX-License-Identifier: Zlib

from __future__ import annotations

import contextlib
import functools
import inspect
import os
from typing import TYPE_CHECKING

import click.testing
import pytest
from hypothesis import strategies
from typing_extensions import NamedTuple, Self

from sitepw import _types, kdf
from sitepw._internals import cli_helpers

__all__ = ()

if TYPE_CHECKING:
    from collections.abc import Iterator

    from typing_extensions import Any


CHEAP_KDF_PARAMETERS = kdf.KdfParameters(
    memory_cost=8, time_cost=1, parallelism=1
)
"""Argon2id cost parameters for tests where the cost is irrelevant."""

DUMMY_SECRET = 'master123'
DUMMY_SITE = 'example.com'
DUMMY_USERNAME = 'alice'


class GoldenKey(NamedTuple):
    """A known site key, for the default cost parameters.

    Attributes:
        secret: The master secret.
        site: The site name.
        key: The expected site key.

    """

    secret: str
    """"""
    site: str
    """"""
    key: bytes
    """"""


GOLDEN_KEYS: list[GoldenKey] = [
    GoldenKey(
        'password123',
        'example.com',
        bytes([
            190, 24, 69, 116, 140, 249, 56, 190, 96, 127, 81, 49, 252, 32,
            166, 163, 81, 135, 253, 226, 148, 210, 209, 225, 70, 1, 159, 49,
            212, 143, 31, 178,
        ]),
    ),
    GoldenKey(
        'different_password',
        'example.com',
        bytes([
            40, 166, 195, 24, 107, 236, 143, 86, 69, 52, 172, 139, 19, 60,
            39, 107, 47, 116, 3, 31, 48, 172, 142, 36, 249, 255, 183, 223,
            155, 218, 115, 218,
        ]),
    ),
    GoldenKey(
        'password123',
        'different.com',
        bytes([
            176, 215, 168, 40, 102, 86, 42, 38, 0, 5, 181, 217, 127, 222, 65,
            169, 24, 249, 255, 114, 44, 228, 87, 7, 216, 120, 207, 35, 24,
            112, 172, 8,
        ]),
    ),
    GoldenKey(
        'password123',
        'EXAMPLE.COM',
        bytes([
            190, 24, 69, 116, 140, 249, 56, 190, 96, 127, 81, 49, 252, 32,
            166, 163, 81, 135, 253, 226, 148, 210, 209, 225, 70, 1, 159, 49,
            212, 143, 31, 178,
        ]),
    ),
]

GOLDEN_STREAM_KEY = bytes(32)
GOLDEN_STREAM_CONTEXT = b'test-context'
GOLDEN_STREAM_BYTES = bytes([
    96, 72, 158, 207, 10, 30, 162, 206, 191, 247, 165, 10, 33, 134, 189, 248,
    11, 203, 121, 95, 83, 23, 26, 180, 132, 246, 23, 49, 25, 224, 145, 135,
    197, 180, 29, 12, 218, 156, 221, 162, 8, 41, 146, 141, 254, 100, 143, 0,
    100, 129, 15, 26, 68, 250, 125, 106, 214, 198, 10, 110, 28, 144, 16, 175,
])
"""The first 64 bytes of the stream for the all-zero key."""
GOLDEN_STREAM_INDICES = [
    6, 2, 8, 7, 0, 0, 2, 6, 1, 7, 5, 0, 3, 4, 9, 8, 1, 3, 1, 5,
]
"""The first 20 results of `next_index(10)` on the same stream."""


class GoldenPassword(NamedTuple):
    """A known derived password, for the default cost parameters.

    Attributes:
        site: The site name.
        username: The username, if any.
        policy: The (raw) policy.
        version: The rotation counter.
        password: The expected password.

    """

    site: str
    """"""
    username: str | None
    """"""
    policy: _types.Policy
    """"""
    version: int
    """"""
    password: str
    """"""


_ALL = tuple(_types.Charset)
_LOWER_UPPER = (_types.Charset.LOWER, _types.Charset.UPPER)

GOLDEN_PASSWORDS: list[GoldenPassword] = [
    GoldenPassword(
        'example.com', 'alice', _types.Policy(12, 12, frozenset(_ALL)), 1,
        '!uZ5S_;H@x-m',
    ),
    GoldenPassword(
        'example.com', 'alice', _types.Policy(12, 12, frozenset(_ALL)), 2,
        'fF2,:U\\Gzn\\:',
    ),
    GoldenPassword(
        'example.com', 'bob', _types.Policy(12, 12, frozenset(_ALL)), 1,
        ')ionz.dK7"-p',
    ),
    GoldenPassword(
        'different.com', 'alice', _types.Policy(12, 12, frozenset(_ALL)), 1,
        'U(#"PK<XqUoN',
    ),
    GoldenPassword(
        'test.com',
        None,
        _types.Policy(8, 8, frozenset(_ALL), frozenset(_LOWER_UPPER)),
        1,
        'Iv(N\\wq=',
    ),
    GoldenPassword(
        'test.com', None, _types.Policy(8, 16, frozenset(_ALL)), 1,
        ';2tbAk?7KL(J_F',
    ),
    GoldenPassword(
        'test.com',
        None,
        _types.Policy(10, 10, frozenset({_types.Charset.DIGIT})),
        1,
        '4042846870',
    ),
    GoldenPassword(
        'test.com',
        None,
        _types.Policy(2, 2, frozenset(_LOWER_UPPER), frozenset(_LOWER_UPPER)),
        1,
        'qZ',
    ),
    GoldenPassword(
        'test.com',
        None,
        _types.Policy(8, 8, frozenset({_types.Charset.SYMBOL})),
        1,
        '<_?.!}{[',
    ),
    GoldenPassword(
        'test.com', None, _types.Policy(8, 8, frozenset(_ALL)), 1, '^3nk&;vF'
    ),
    GoldenPassword(
        'test.com', '', _types.Policy(8, 8, frozenset(_ALL)), 1, '^3nk&;vF'
    ),
]  # fmt: skip


@contextlib.contextmanager
def cheap_kdf() -> Iterator[None]:
    """Run the key derivation with minimal cost parameters.

    Usable within hypothesis tests, unlike function-scoped fixtures.

    """
    with pytest.MonkeyPatch.context() as monkeypatch:
        monkeypatch.setattr(
            kdf,
            'derive_site_key',
            functools.partial(
                kdf.derive_site_key, params=CHEAP_KDF_PARAMETERS
            ),
        )
        yield


@strategies.composite
def raw_policies(draw: strategies.DrawFn) -> _types.Policy:
    """Return a policy that passes validation."""
    allow = draw(
        strategies.frozensets(strategies.sampled_from(_ALL), min_size=1)
    )
    force = draw(
        strategies.frozensets(strategies.sampled_from(sorted(allow)))
    )
    min_length = draw(
        strategies.integers(min_value=max(1, len(force)), max_value=128)
    )
    max_length = draw(
        strategies.integers(min_value=min_length, max_value=128)
    )
    return _types.Policy(min_length, max_length, allow, force)


@contextlib.contextmanager
def isolated_config(
    monkeypatch: pytest.MonkeyPatch,
    runner: click.testing.CliRunner,
) -> Iterator[None]:
    """Run within an empty, isolated configuration directory."""
    env_name = cli_helpers.PROG_NAME.replace(' ', '_').upper() + '_PATH'
    with runner.isolated_filesystem():
        monkeypatch.setenv('HOME', os.getcwd())
        monkeypatch.setenv('USERPROFILE', os.getcwd())
        monkeypatch.delenv(env_name, raising=False)
        config_dir = cli_helpers.config_dir()
        os.makedirs(config_dir, exist_ok=True)
        yield


@contextlib.contextmanager
def isolated_user_config(
    monkeypatch: pytest.MonkeyPatch,
    runner: click.testing.CliRunner,
    config_text: str,
) -> Iterator[None]:
    """Run within an isolated configuration directory with a user config."""
    with isolated_config(monkeypatch=monkeypatch, runner=runner):
        config_filename = cli_helpers.config_filename()
        with open(config_filename, 'w', encoding='UTF-8') as outfile:
            outfile.write(config_text)
        yield


class CliRunner(click.testing.CliRunner):
    """A [`click.testing.CliRunner`][] with separate standard error.

    click 8.2 always separates standard output and standard error;
    earlier versions need to be asked to.

    """

    def __init__(self, **kwargs: Any) -> None:  # noqa: ANN401
        params = inspect.signature(click.testing.CliRunner).parameters
        if 'mix_stderr' in params:  # pragma: no cover
            kwargs.setdefault('mix_stderr', False)
        super().__init__(**kwargs)


class ReadableResult(NamedTuple):
    """Helper class for formatting and testing click.testing.Result objects."""

    exception: BaseException | None
    exit_code: int
    output: str
    stderr: str

    @classmethod
    def parse(cls, r: click.testing.Result, /) -> Self:
        try:
            stderr = r.stderr
        except ValueError:
            stderr = r.output
        return cls(r.exception, r.exit_code, r.stdout or '', stderr or '')

    def clean_exit(
        self, *, output: str = '', empty_stderr: bool = False
    ) -> bool:
        """Return whether the invocation exited cleanly.

        Args:
            output:
                An expected output string.

        """
        return (
            (
                not self.exception
                or (
                    isinstance(self.exception, SystemExit)
                    and self.exit_code == 0
                )
            )
            and (not output or output in self.output)
            and (not empty_stderr or not self.stderr)
        )

    def error_exit(
        self, *, error: str = '', exit_code: int | None = None
    ) -> bool:
        """Return whether the invocation exited uncleanly.

        Args:
            error:
                An expected error message.
            exit_code:
                An expected exit code, if any.

        """
        return (
            isinstance(self.exception, SystemExit)
            and self.exit_code > 0
            and (exit_code is None or self.exit_code == exit_code)
            and (not error or error in self.stderr)
        )
