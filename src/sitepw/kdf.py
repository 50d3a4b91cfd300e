# SPDX-FileCopyrightText: 2025 Marco Ricci <software@the13thletter.info>
#
# SPDX-License-Identifier: Zlib

"""Stretch the master secret into a per-site key.

The site name determines the salt, so no extra secret is needed to
separate the keys of different sites.  The memory-hard hash function is
Argon2id, via [argon2-cffi][ARGON2_CFFI].  Its cost parameters are part
of the derivation contract: changing them changes every derived
password.

[ARGON2_CFFI]: https://pypi.org/project/argon2-cffi/

"""

from __future__ import annotations

import contextlib
import hashlib
import logging
from typing import TYPE_CHECKING

import argon2.exceptions
from argon2 import low_level
from typing_extensions import NamedTuple

from sitepw import _types
from sitepw._internals import secure_buffers

if TYPE_CHECKING:
    from typing_extensions import Buffer

__all__ = (
    'KDF_OUTPUT_LENGTH',
    'KDF_PARAMETERS',
    'SALT_LENGTH',
    'SALT_PREFIX',
    'WHITE_SPACE',
    'InvalidKdfParamsError',
    'KdfError',
    'KdfHashingError',
    'KdfParameters',
    'derive_site_key',
    'normalize_site',
    'site_salt',
)

KDF_OUTPUT_LENGTH = 32
SALT_LENGTH = 16
SALT_PREFIX = b'pwgen-salt-v1:'
"""A tag prepended to the normalized site name before hashing it into
the salt."""

_ASCII_LOWERCASE_TABLE = str.maketrans(
    'ABCDEFGHIJKLMNOPQRSTUVWXYZ', 'abcdefghijklmnopqrstuvwxyz'
)
WHITE_SPACE = (
    '\t\n\x0b\x0c\r \x85\xa0\u1680'
    '\u2000\u2001\u2002\u2003\u2004\u2005\u2006\u2007\u2008\u2009\u200a'
    '\u2028\u2029\u202f\u205f\u3000'
)
"""The characters with the Unicode `White_Space` property.

Unlike [`str.isspace`][], this excludes the separators U+001C to U+001F.
"""

logger = logging.getLogger(__name__)


class KdfError(_types.SitepwError):
    """Key derivation failed.  Fatal; retrying cannot help."""


class InvalidKdfParamsError(KdfError):
    """The key derivation cost parameters are unacceptable."""


class KdfHashingError(KdfError):
    """The Argon2 implementation reported an internal error."""


class KdfParameters(NamedTuple):
    """Argon2id cost parameters.

    Attributes:
        memory_cost: Memory cost, in KiB.
        time_cost: Number of iterations.
        parallelism: Number of lanes.
        hash_len: Output length, in bytes.

    """

    memory_cost: int
    """"""
    time_cost: int
    """"""
    parallelism: int
    """"""
    hash_len: int = KDF_OUTPUT_LENGTH
    """"""

    def check(self) -> None:
        """Check the parameters against the Argon2 limits.

        Raises:
            InvalidKdfParamsError: The parameters are unacceptable.

        """
        if self.time_cost < 1:
            msg = f'invalid KDF parameters: time cost {self.time_cost!r}'
            raise InvalidKdfParamsError(msg)
        if self.parallelism < 1:
            msg = f'invalid KDF parameters: parallelism {self.parallelism!r}'
            raise InvalidKdfParamsError(msg)
        if self.memory_cost < 8 * self.parallelism:
            msg = (
                f'invalid KDF parameters: memory cost {self.memory_cost!r} '
                f'below 8 KiB per lane'
            )
            raise InvalidKdfParamsError(msg)
        if self.hash_len != KDF_OUTPUT_LENGTH:
            msg = f'invalid KDF parameters: output length {self.hash_len!r}'
            raise InvalidKdfParamsError(msg)


KDF_PARAMETERS = KdfParameters(memory_cost=65536, time_cost=3, parallelism=1)
"""The fixed cost parameters: 64 MiB, 3 iterations, 1 lane."""


def normalize_site(site: str, /) -> str:
    """Normalize a site name: strip whitespace, lowercase ASCII letters.

    Only characters in [`WHITE_SPACE`][] are stripped.  Non-ASCII
    letters are left alone.  The operation is idempotent.

    Examples:
        >>> normalize_site('  Example.COM\\n')
        'example.com'
        >>> normalize_site('ÄBC.de')
        'Äbc.de'
        >>> normalize_site('\\x1fexample.com')
        '\\x1fexample.com'

    """
    return site.strip(WHITE_SPACE).translate(_ASCII_LOWERCASE_TABLE)


def site_salt(site: str, /) -> bytes:
    """Return the 16-byte salt for the given site.

    The salt is the truncated SHA-256 hash of [`SALT_PREFIX`][] and the
    UTF-8 encoded, [normalized][normalize_site] site name.

    """
    digest = hashlib.sha256(
        SALT_PREFIX + normalize_site(site).encode('UTF-8')
    ).digest()
    return digest[:SALT_LENGTH]


def derive_site_key(
    secret: Buffer | str,
    site: str,
    /,
    *,
    params: KdfParameters = KDF_PARAMETERS,
) -> bytearray:
    """Derive the 32-byte site key from the master secret.

    Args:
        secret:
            The master secret.  If a text string, then its UTF-8
            encoding is used.
        site:
            The site name.  Normalized via [`normalize_site`][] before
            use.
        params:
            The Argon2id cost parameters.  Anything other than the
            default yields keys incompatible with every other sitepw
            installation; intended for testing only.

    Returns:
        The derived key, in a fresh buffer.  The caller owns the buffer
        and is responsible for wiping it.

    Raises:
        InvalidKdfParamsError: The cost parameters are unacceptable.
        KdfHashingError: Argon2 failed internally.

    """
    params.check()
    with contextlib.ExitStack() as stack:
        secret_buf = stack.enter_context(secure_buffers.SecretBuffer(secret))
        salt_buf = stack.enter_context(
            secure_buffers.SecretBuffer(site_salt(site))
        )
        try:
            # argon2-cffi copies its inputs into C buffers, and only
            # accepts immutable bytes.
            raw_key = low_level.hash_secret_raw(
                secret=bytes(secret_buf),
                salt=bytes(salt_buf),
                time_cost=params.time_cost,
                memory_cost=params.memory_cost,
                parallelism=params.parallelism,
                hash_len=params.hash_len,
                type=low_level.Type.ID,
                version=low_level.ARGON2_VERSION,
            )
        except argon2.exceptions.HashingError as exc:
            msg = f'argon2 error: {exc}'
            raise KdfHashingError(msg) from exc
    logger.debug(
        'derived site key for site %r (m=%d, t=%d, p=%d)',
        normalize_site(site),
        params.memory_cost,
        params.time_cost,
        params.parallelism,
    )
    return bytearray(raw_key)
