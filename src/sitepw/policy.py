# SPDX-FileCopyrightText: 2025 Marco Ricci <software@the13thletter.info>
#
# SPDX-License-Identifier: Zlib

"""Character-composition policies: validation and canonical encoding.

[`validate`][] is the single source of truth for the policy
invariants.  Everything downstream of it, in particular
[`sitepw.generator.generate_password`][], only ever sees
[`CanonicalPolicy`][sitepw._types.CanonicalPolicy] objects.

"""

from __future__ import annotations

from typing import TYPE_CHECKING

from sitepw import _types
from sitepw._types import CanonicalPolicy, Charset, Policy

if TYPE_CHECKING:
    from collections.abc import Iterable

__all__ = (
    'MAX_LENGTH',
    'MIN_LENGTH',
    'EmptyAllowedError',
    'ForceNotSubsetError',
    'InvalidBoundsError',
    'MinLessThanForcedCountError',
    'PolicyError',
    'allowed_alphabet',
    'default_policy',
    'encode',
    'forced_sets',
    'make_policy',
    'validate',
)

MIN_LENGTH = 1
MAX_LENGTH = 128


class PolicyError(_types.SitepwError, ValueError):
    """The policy violates one of the policy invariants.

    Always a caller input issue.

    """


class InvalidBoundsError(PolicyError):
    """The length bounds are inconsistent after clamping."""

    def __init__(self) -> None:  # noqa: D107
        super().__init__(
            'invalid length bounds (require 1 ≤ min ≤ max ≤ 128)'  # noqa: RUF001
        )


class EmptyAllowedError(PolicyError):
    """No character set is allowed."""

    def __init__(self) -> None:  # noqa: D107
        super().__init__('allowed character sets must be nonempty')


class ForceNotSubsetError(PolicyError):
    """A forced character set is not allowed."""

    def __init__(self) -> None:  # noqa: D107
        super().__init__('forced sets must be subset of allowed sets')


class MinLessThanForcedCountError(PolicyError):
    """The minimum length cannot accommodate all forced character sets."""

    def __init__(self) -> None:  # noqa: D107
        super().__init__(
            'min length must be at least the number of forced sets'
        )


def make_policy(
    min: int,  # noqa: A002
    max: int,  # noqa: A002
    allow: Iterable[Charset | str] = tuple(Charset),
    force: Iterable[Charset | str] = (),
) -> Policy:
    """Assemble a raw (not yet validated) policy.

    Character sets may be given as [`Charset`][sitepw._types.Charset]
    members or by name, or as a comma-separated string of names.

    Raises:
        ValueError: A character set name is unknown.

    Examples:
        >>> p = make_policy(8, 12, 'lower,digit', ['digit'])
        >>> encode(p)
        'min=8;max=12;allow=lower,digit;force=digit'

    """
    return Policy(
        min=min,
        max=max,
        allow=_types.charset_frozenset(allow),
        force=_types.charset_frozenset(force),
    )


def default_policy() -> Policy:
    """Return the default policy: 12 to 16 characters, all sets allowed."""
    return Policy(min=12, max=16, allow=frozenset(Charset))


def _clamp(value: int, /) -> int:
    if isinstance(value, bool) or not isinstance(value, int):
        msg = f'length bound is not an integer: {value!r}'
        raise TypeError(msg)
    return max(MIN_LENGTH, min(MAX_LENGTH, value))


def validate(policy: Policy, /) -> CanonicalPolicy:
    """Validate a policy and return its canonical form.

    The length bounds are clamped independently into the range 1 to
    128; out-of-range bounds are not an error.  The checks then run in
    a fixed order, and the first violation is raised.

    Args:
        policy: The policy to validate.

    Returns:
        The canonical policy, with clamped bounds and the original
        allowed and forced sets.

    Raises:
        InvalidBoundsError: After clamping, `min > max`.
        EmptyAllowedError: No character set is allowed.
        ForceNotSubsetError: A forced set is not allowed.
        MinLessThanForcedCountError:
            `min` is smaller than the number of forced sets.
        TypeError: A length bound is not an integer.

    Examples:
        >>> p = validate(make_policy(0, 200))
        >>> (p.min, p.max)
        (1, 128)
        >>> validate(make_policy(8, 16, 'digit', 'lower'))  # doctest: +IGNORE_EXCEPTION_DETAIL
        Traceback (most recent call last):
            ...
        sitepw.policy.ForceNotSubsetError: forced sets must be subset of allowed sets

    """
    min_ = _clamp(policy.min)
    max_ = _clamp(policy.max)
    if min_ > max_:
        raise InvalidBoundsError
    allow = _types.charset_frozenset(policy.allow)
    force = _types.charset_frozenset(policy.force)
    if not allow:
        raise EmptyAllowedError
    if not force <= allow:
        raise ForceNotSubsetError
    if min_ < len(force):
        raise MinLessThanForcedCountError
    return CanonicalPolicy(min=min_, max=max_, allow=allow, force=force)


def _csv(charsets: frozenset[Charset], /) -> str:
    return ','.join(c.value for c in Charset if c in charsets)


def encode(policy: Policy, /) -> str:
    """Return the canonical text encoding of the policy.

    The format is `min=<n>;max=<n>;allow=<csv>;force=<csv>`, where the
    comma-separated lists name the character sets in the fixed order
    `lower,upper,digit,symbol`.  This encoding is mixed into the
    derivation context; changing it changes every derived password.

    Examples:
        >>> encode(default_policy())
        'min=12;max=16;allow=lower,upper,digit,symbol;force='

    """
    return 'min={};max={};allow={};force={}'.format(
        policy.min,
        policy.max,
        _csv(policy.allow),
        _csv(policy.force),
    )


def allowed_alphabet(policy: Policy, /) -> bytes:
    """Return the union alphabet of all allowed character sets.

    Concatenated in the fixed order `lower,upper,digit,symbol`.

    """
    return b''.join(c.alphabet for c in Charset if c in policy.allow)


def forced_sets(policy: Policy, /) -> list[tuple[Charset, bytes]]:
    """Return the forced character sets and their alphabets, in order.

    Sets that are forced but not allowed are silently skipped;
    [`validate`][] already rejects such policies.

    """
    return [
        (c, c.alphabet)
        for c in Charset
        if c in policy.force and c in policy.allow
    ]
