# SPDX-FileCopyrightText: 2025 Marco Ricci <software@the13thletter.info>
#
# SPDX-License-Identifier: Zlib

"""Assemble passwords from the keyed byte stream."""

from __future__ import annotations

import contextlib
import logging
from typing import TYPE_CHECKING

from sitepw import _types, kdf, stream
from sitepw import policy as _policy
from sitepw._internals import secure_buffers

if TYPE_CHECKING:
    from typing_extensions import Buffer

__all__ = (
    'CONTEXT_TAG',
    'MAX_VERSION',
    'GenerationError',
    'InvalidInputError',
    'PasswordGenerator',
    'build_context',
    'generate_password',
)

CONTEXT_TAG = b'pwgen-v1'
"""The format tag at the start of every stream context."""
MAX_VERSION = 2**32 - 1

GenerationError = _types.SitepwError
"""The common base class of all password generation errors."""

logger = logging.getLogger(__name__)


class InvalidInputError(_types.SitepwError, ValueError):
    """The generator was handed input that breaks its contract.

    Usually a policy that did not come from [`sitepw.policy.validate`][].

    """

    def __init__(self, reason: str, /) -> None:  # noqa: D107
        super().__init__(f'invalid input: {reason}')
        self.reason = reason


def _check_policy(policy: _types.Policy, /) -> None:
    """Re-check the numeric policy invariants.

    Raises:
        InvalidInputError: The policy is not a valid canonical policy.

    """
    if not isinstance(policy, _types.CanonicalPolicy):
        raise InvalidInputError('policy has not been validated')
    for charsets in (policy.allow, policy.force):
        if not isinstance(charsets, frozenset) or not all(
            isinstance(c, _types.Charset) for c in charsets
        ):
            raise InvalidInputError('charsets are not a set of Charset')
    lo, hi = _policy.MIN_LENGTH, _policy.MAX_LENGTH
    for value in (policy.min, policy.max):
        if isinstance(value, bool) or not isinstance(value, int):
            raise InvalidInputError('length bound is not an integer')
        if not lo <= value <= hi:
            raise InvalidInputError('length bound out of range')
    if policy.min > policy.max:
        raise InvalidInputError('min exceeds max')
    if len(_policy.forced_sets(policy)) > policy.min:
        raise InvalidInputError('more forced sets than min length')
    if not _policy.allowed_alphabet(policy):
        raise InvalidInputError('empty allowed alphabet')


def _check_version(version: int, /) -> None:
    if isinstance(version, bool) or not isinstance(version, int):
        raise InvalidInputError('version is not an integer')
    if not 0 <= version <= MAX_VERSION:
        raise InvalidInputError('version out of range')


def build_context(
    site: str,
    username: str | None,
    policy: _types.Policy,
    version: int,
) -> bytearray:
    """Build the stream context for the given inputs.

    The context is the concatenation of [`CONTEXT_TAG`][],
    `|site=<site>`, `|user=<username>`, `|policy=<encoded policy>` and
    `|version=<decimal version>`.  A missing username is encoded like an
    empty one.  `site` is used verbatim; normalize it first.

    Examples:
        >>> p = _policy.validate(_policy.make_policy(8, 8, 'digit'))
        >>> bytes(build_context('example.com', None, p, 3))
        b'pwgen-v1|site=example.com|user=|policy=min=8;max=8;allow=digit;force=|version=3'

    """
    parts = [
        CONTEXT_TAG,
        b'|site=',
        site.encode('UTF-8'),
        b'|user=',
        (username or '').encode('UTF-8'),
        b'|policy=',
        _policy.encode(policy).encode('UTF-8'),
        b'|version=',
        str(version).encode('ascii'),
    ]
    return bytearray(b''.join(parts))


def generate_password(
    secret: Buffer | str,
    site: str,
    username: str | None,
    policy: _types.CanonicalPolicy,
    version: int,
) -> str:
    """Derive the password for a site.

    Args:
        secret:
            The master secret.  If a text string, then its UTF-8
            encoding is used.
        site:
            The site name.  Surrounding whitespace is stripped and ASCII
            letters are lowercased.
        username:
            An optional username.  `None` and the empty string are
            equivalent.
        policy:
            The character-composition policy, as returned by
            [`sitepw.policy.validate`][].
        version:
            The rotation counter, between 0 and 2**32 - 1.

    Returns:
        The derived password.

    Raises:
        InvalidInputError:
            The policy did not come from [`sitepw.policy.validate`][],
            or violates the policy invariants, or the version is out of
            range.
        sitepw.kdf.KdfError:
            Key derivation failed.
        sitepw.stream.PrngError:
            The byte stream failed.

    """
    _check_policy(policy)
    _check_version(version)
    site_id = kdf.normalize_site(site)
    key = kdf.derive_site_key(secret, site_id)
    # Both the key and the context are wiped once the stream is seeded.
    with contextlib.ExitStack() as stack:
        stack.enter_context(secure_buffers.SecretBuffer.adopt(key))
        context = stack.enter_context(
            secure_buffers.SecretBuffer.adopt(
                build_context(site_id, username, policy, version)
            )
        )
        rng = stream.HkdfStream(key, context)
    with rng, secure_buffers.SecretBuffer() as result:
        if policy.min == policy.max:
            length = policy.min
        else:
            length = policy.min + rng.next_index(policy.max - policy.min + 1)
        union = _policy.allowed_alphabet(policy)
        for _charset, alphabet in _policy.forced_sets(policy):
            result.append(alphabet[rng.next_index(len(alphabet))])
        while len(result) < length:
            result.append(union[rng.next_index(len(union))])
        # Fisher-Yates, from the last position down to 1.
        for i in range(len(result) - 1, 0, -1):
            j = rng.next_index(i + 1)
            result[i], result[j] = result[j], result[i]
        logger.debug(
            'assembled %d characters from %d stream blocks',
            length,
            rng.blocks_generated,
        )
        return result.decode('ascii')


class PasswordGenerator:
    """Generate passwords for many sites under one policy.

    A thin convenience wrapper around [`generate_password`][]: store
    the policy (validated once, at construction time), then derive
    passwords per site.  The master secret is never stored; pass it to
    every call.

    """

    def __init__(
        self,
        policy: _types.Policy | None = None,
        /,
    ) -> None:
        """Initialize the generator.

        Args:
            policy:
                The character-composition policy.  Validated unless it
                already is a canonical policy.  Defaults to
                [`sitepw.policy.default_policy`][].

        Raises:
            sitepw.policy.PolicyError:
                The policy is invalid.

        """
        if policy is None:
            policy = _policy.default_policy()
        if not isinstance(policy, _types.CanonicalPolicy):
            policy = _policy.validate(policy)
        self._policy = policy

    @property
    def policy(self) -> _types.CanonicalPolicy:
        """The canonical policy in use."""
        return self._policy

    def generate(
        self,
        secret: Buffer | str,
        site: str,
        /,
        *,
        username: str | None = None,
        version: int = 1,
    ) -> str:
        """Derive the password for a site.

        Args:
            secret:
                The master secret.  If a text string, then its UTF-8
                encoding is used.
            site: The site name.
            username: An optional username.
            version: The rotation counter.

        Raises:
            InvalidInputError: See [`generate_password`][].
            sitepw.kdf.KdfError: See [`generate_password`][].
            sitepw.stream.PrngError: See [`generate_password`][].

        """
        return generate_password(
            secret, site, username, self._policy, version
        )
