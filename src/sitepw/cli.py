# SPDX-FileCopyrightText: 2025 Marco Ricci <software@the13thletter.info>
#
# SPDX-License-Identifier: Zlib

# ruff: noqa: TRY400

"""Command-line interface for sitepw."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, NoReturn

import click
from typing_extensions import Any

from sitepw import _internals, _types, generator, kdf, policy, stream
from sitepw._internals import cli_helpers, cli_machinery

if TYPE_CHECKING:
    from collections.abc import Set as AbstractSet

__all__ = ('sitepw',)

PROG_NAME = _internals.PROG_NAME
VERSION = _internals.VERSION

EXIT_INVALID_INPUT = 2
"""Exit status for invalid input and policy errors."""
EXIT_FATAL = 4
"""Exit status for key derivation, stream and other fatal errors."""


@click.group(
    context_settings={'help_option_names': ['-h', '--help']},
    cls=cli_machinery.TopLevelCLIEntryPoint,
)
@cli_machinery.version_option(cli_machinery.sitepw_version_option_callback)
@cli_machinery.color_forcing_pseudo_option
@cli_machinery.standard_logging_options
@click.pass_context
def sitepw(ctx: click.Context, /) -> None:
    """Derive per-site passwords, deterministically, from a master secret.

    This is a [`click`][CLICK]-powered command-line interface function,
    and not intended for programmatic use.  (See also
    [`click.testing.CliRunner`][] for controlled, programmatic
    invocation.)

    [CLICK]: https://pypi.org/package/click/

    """
    del ctx  # Unused.


class _GenerateContext:
    """The state of a single `sitepw generate` call."""

    def __init__(self, ctx: click.Context, /) -> None:
        self.ctx = ctx
        self.params: dict[str, Any] = ctx.params
        self.logger = logging.getLogger(PROG_NAME)

    def err(
        self,
        msg: Any,  # noqa: ANN401
        /,
        *args: Any,  # noqa: ANN401
        exit_code: int = EXIT_INVALID_INPUT,
    ) -> NoReturn:
        """Log an error, then abort the call with the given exit code."""
        self.logger.error(
            msg, *args, stacklevel=2, extra={'color': self.ctx.color}
        )
        self.ctx.exit(exit_code)

    def check_secret_source(self) -> None:
        sources = [
            self.params['master'] is not None,
            self.params['master_prompt'],
            self.params['master_stdin'],
        ]
        if sum(sources) != 1:
            msg = (
                'exactly one of --master, --master-prompt and '
                '--master-stdin is required'
            )
            raise click.UsageError(msg, ctx=self.ctx)

    def site(self) -> str:
        # Full Unicode lowercasing here; the core only folds ASCII.
        site = kdf.normalize_site(self.params['site']).lower()
        if not site:
            self.err('invalid input: --site must be nonempty after trim')
        return site

    def defaults(self) -> dict[str, Any]:
        try:
            return cli_helpers.generate_defaults(
                cli_helpers.load_user_config()
            )
        except OSError as exc:
            self.err(
                'cannot load user config: %s: %r',
                exc.strerror,
                exc.filename,
                exit_code=EXIT_FATAL,
            )
        except ValueError as exc:
            self.err('invalid user config: %s', exc)

    def secret(self) -> str:
        try:
            if self.params['master_prompt']:
                secret = cli_helpers.prompt_for_secret()
            elif self.params['master_stdin']:
                secret = cli_helpers.read_secret_from_stdin()
            else:
                secret = self.params['master']
        except OSError as exc:
            self.err(
                'cannot read master secret: %s',
                exc.strerror,
                exit_code=EXIT_FATAL,
            )
        if not secret:
            self.err('invalid input: master secret must be nonempty')
        return secret

    def canonical_policy(
        self, defaults: dict[str, Any], /
    ) -> _types.CanonicalPolicy:
        min_length, max_length = cli_helpers.length_bounds(
            self.params['length'],
            self.params['min_length'],
            self.params['max_length'],
            defaults=defaults,
        )
        excluded: AbstractSet[_types.Charset] = {
            charset
            for charset in _types.Charset
            if self.params[f'no_{charset.value}']
        }
        allowed, forced = cli_helpers.fold_charsets(
            self.params['allow'],
            self.params['force'],
            excluded=excluded,
            defaults=defaults,
        )
        try:
            return policy.validate(
                policy.make_policy(min_length, max_length, allowed, forced)
            )
        except policy.PolicyError as exc:
            self.err('invalid input: %s', exc)

    def run(self) -> None:
        self.check_secret_source()
        site = self.site()
        defaults = self.defaults()
        secret = self.secret()
        canonical_policy = self.canonical_policy(defaults)
        username = self.params['username']
        if username is None:
            username = defaults.get('username', '')
        version = self.params['version']
        self.logger.info(
            'Generating password...\n'
            '  site: %s\n'
            '  username: %s\n'
            '  version: %d\n'
            '  policy: %s',
            site,
            username or '<empty>',
            version,
            policy.encode(canonical_policy),
            extra={'color': self.ctx.color},
        )
        try:
            password = generator.generate_password(
                secret, site, username or None, canonical_policy, version
            )
        except policy.PolicyError as exc:
            self.err('policy error: %s', exc)
        except generator.InvalidInputError as exc:
            self.err('%s', exc)
        except kdf.KdfError as exc:
            self.err('kdf error: %s', exc, exit_code=EXIT_FATAL)
        except stream.PrngError as exc:
            self.err('prng error: %s', exc, exit_code=EXIT_FATAL)
        if self.params['as_json']:
            click.echo(
                cli_helpers.render_json(
                    password,
                    site=site,
                    username=username or None,
                    version=version,
                    canonical_policy=canonical_policy,
                ),
                color=self.ctx.color,
            )
        else:
            click.echo(password, color=self.ctx.color)


@sitepw.command(
    'generate',
    context_settings={'help_option_names': ['-h', '--help']},
)
@click.option(
    '--site',
    required=True,
    metavar='STRING',
    help='Site identifier (trimmed, ASCII letters lowercased).',
)
@click.option(
    '--master',
    metavar='STRING',
    default=None,
    help='Master secret, given directly (visible to other processes!).',
)
@click.option(
    '--master-prompt',
    is_flag=True,
    help='Prompt for the master secret on the terminal.',
)
@click.option(
    '--master-stdin',
    is_flag=True,
    help='Read the entire standard input as the master secret.',
)
@click.option(
    '--username',
    metavar='STRING',
    default=None,
    help='Optional username to include in the derivation.',
)
@click.option(
    '--length',
    metavar='INT',
    callback=cli_machinery.validate_length,
    help='Fixed password length.  Overrides --min and --max.',
)
@click.option(
    '--min',
    'min_length',
    metavar='INT',
    callback=cli_machinery.validate_length,
    help='Minimum password length.  [default: 12]',
)
@click.option(
    '--max',
    'max_length',
    metavar='INT',
    callback=cli_machinery.validate_length,
    help='Maximum password length.  [default: 16]',
)
@click.option(
    '--allow',
    metavar='CSV',
    callback=cli_machinery.validate_charsets,
    help='Allowed character sets (of lower, upper, digit, symbol).',
)
@click.option(
    '--force',
    metavar='CSV',
    callback=cli_machinery.validate_charsets,
    help='Character sets that must occur at least once.',
)
@click.option(
    '--no-lower', is_flag=True, help='Disallow lowercase letters.'
)
@click.option(
    '--no-upper', is_flag=True, help='Disallow uppercase letters.'
)
@click.option('--no-digit', is_flag=True, help='Disallow digits.')
@click.option('--no-symbol', is_flag=True, help='Disallow symbols.')
@click.option(
    '--version',
    metavar='UINT',
    default=1,
    show_default=True,
    callback=cli_machinery.validate_version,
    help='Rotation counter; change it to get a fresh password.',
)
@click.option(
    '--json',
    'as_json',
    is_flag=True,
    help='Print a JSON object with details instead of the password.',
)
@cli_machinery.color_forcing_pseudo_option
@cli_machinery.standard_logging_options
@click.pass_context
def sitepw_generate(
    ctx: click.Context,
    /,
    **_kwargs: Any,  # noqa: ANN401
) -> None:
    """Derive the password for a site.

    This is a [`click`][CLICK]-powered command-line interface function,
    and not intended for programmatic use.  (See also
    [`click.testing.CliRunner`][] for controlled, programmatic
    invocation.)

    [CLICK]: https://pypi.org/package/click/

    Exits with status 2 on invalid input or policy errors, and with
    status 4 on key derivation, stream or other fatal errors.

    """
    _GenerateContext(ctx).run()


if __name__ == '__main__':
    sitepw()
