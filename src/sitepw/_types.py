# SPDX-FileCopyrightText: 2025 Marco Ricci <software@the13thletter.info>
#
# SPDX-License-Identifier: Zlib

"""Types used by sitepw."""

from __future__ import annotations

import collections
import enum
import types
from typing import TYPE_CHECKING

from typing_extensions import NamedTuple

if TYPE_CHECKING:
    from collections.abc import Iterable

__all__ = (
    'CHARSET_ALPHABETS',
    'CanonicalPolicy',
    'Charset',
    'Policy',
    'SitepwError',
)


class SitepwError(Exception):
    """Base class for all errors raised by the derivation pipeline.

    Every failure of [`sitepw.generator.generate_password`][] is an
    instance of this class: policy errors, key derivation errors,
    stream errors and defensive input errors alike.

    """


class Charset(str, enum.Enum):
    """A character class from which password characters are drawn.

    The member values are the canonical names used in the policy
    encoding.  Iteration order is the canonical order: lowercase,
    uppercase, digit, symbol.  This order is part of the derivation
    contract and must not change.

    Attributes:
        LOWER: ASCII lowercase letters.
        UPPER: ASCII uppercase letters.
        DIGIT: ASCII decimal digits.
        SYMBOL:
            All other ASCII printable characters, except space and
            backquote.

    """

    LOWER = 'lower'
    """"""
    UPPER = 'upper'
    """"""
    DIGIT = 'digit'
    """"""
    SYMBOL = 'symbol'
    """"""

    @property
    def alphabet(self) -> bytes:
        """The fixed, ordered alphabet of this character class."""
        return CHARSET_ALPHABETS[self]

    @classmethod
    def coerce(cls, value: Charset | str, /) -> Charset:
        """Return the charset named by `value`.

        Raises:
            ValueError: `value` names no known charset.

        """
        if isinstance(value, cls):
            return value
        try:
            return cls(str(value).strip().lower())
        except ValueError:
            msg = f'unknown character set: {value!r}'
            raise ValueError(msg) from None


CHARSET_ALPHABETS = types.MappingProxyType(
    collections.OrderedDict([
        (Charset.LOWER, b'abcdefghijklmnopqrstuvwxyz'),
        (Charset.UPPER, b'ABCDEFGHIJKLMNOPQRSTUVWXYZ'),
        (Charset.DIGIT, b'0123456789'),
        (Charset.SYMBOL, b'!"#$%&\'()*+,-./:;<=>?@[\\]^_{|}~'),
    ])
)
"""
    The alphabets of the known character sets.  Relies on a certain,
    fixed order for their definition and their contents.

"""


def charset_frozenset(
    values: Iterable[Charset | str], /
) -> frozenset[Charset]:
    """Convert an iterable of charsets or charset names to a frozenset.

    Raises:
        ValueError: An item names no known charset.

    """
    if isinstance(values, str):
        values = [part for part in values.split(',') if part.strip()]
    return frozenset(Charset.coerce(v) for v in values)


class Policy(NamedTuple):
    """A character-composition policy, as supplied by the caller.

    A `Policy` is untrusted: use [`sitepw.policy.validate`][] to obtain
    a [`CanonicalPolicy`][], which is the only policy type the
    generator accepts.

    Attributes:
        min: Minimum password length.
        max: Maximum password length.
        allow: The character sets to draw characters from.
        force:
            The character sets that must contribute at least one
            character each.  Must be a subset of `allow`.

    """

    min: int
    """"""
    max: int
    """"""
    allow: frozenset[Charset]
    """"""
    force: frozenset[Charset] = frozenset()
    """"""


class CanonicalPolicy(Policy):
    """A validated policy.

    Only [`sitepw.policy.validate`][] constructs these.  The bounds are
    clamped to the range 1 to 128, `min <= max`, `allow` is nonempty,
    `force` is a subset of `allow`, and `min` is at least the number of
    forced sets.

    """

    __slots__ = ()
