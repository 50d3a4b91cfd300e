# SPDX-FileCopyrightText: 2025 Marco Ricci <software@the13thletter.info>
#
# SPDX-License-Identifier: Zlib

"""A deterministic byte stream keyed by the site key.

The stream is a feedback-mode variant of HKDF (RFC 5869): the key is
run through HKDF-Extract with a fixed salt, and the output blocks are
chained HMAC-SHA-256 values over the previous block, a context string
and a block counter.  Each block thus depends on all prior blocks.

On top of the raw byte stream, [`HkdfStream.next_index`][] provides
unbiased integers in a requested range via rejection sampling, in the
same spirit as the rejection sampling in `vault`'s "sequin" module,
but without reusing rejected samples.

The main API is the [`HkdfStream`][] class.

"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Literal

from cryptography.hazmat.primitives import hashes, hmac

from sitepw import _types
from sitepw._internals import secure_buffers

if TYPE_CHECKING:
    import types

    from typing_extensions import Buffer, Self

__all__ = (
    'BLOCK_SIZE',
    'HKDF_SALT',
    'HkdfStream',
    'PrngError',
    'StreamExhaustedError',
)

BLOCK_SIZE = 32
HKDF_SALT = b'pwgen-hkdf-salt-v1'
"""The fixed salt for the HKDF-Extract step."""
MAX_BLOCKS = 255
"""The block counter is a single byte; block 256 would wrap."""

logger = logging.getLogger(__name__)


class PrngError(_types.SitepwError):
    """The keyed stream cannot produce output.

    Indicates a programming error, not a recoverable condition.

    """


class StreamExhaustedError(PrngError):
    """The stream's block counter would wrap around."""

    def __init__(self) -> None:  # noqa: D107
        super().__init__(f'stream exhausted after {MAX_BLOCKS} blocks')


def _hmac_sha256(key: Buffer, *parts: Buffer) -> bytes:
    mac = hmac.HMAC(key, hashes.SHA256())
    for part in parts:
        mac.update(part)
    return mac.finalize()


class HkdfStream:
    """Generate a deterministic stream of bytes from a key and a context.

    Given a 32-byte key and a context byte string, produce an unbounded
    (well, up to 8160 bytes) deterministic byte stream.  Identical
    inputs always yield identical streams; the stream is only as
    unpredictable as the key is secret.

    The stream holds secret material.  Use it as a context manager, or
    call [`wipe`][] explicitly, to overwrite its state when done.

    Examples:
        >>> with HkdfStream(bytes(32), b'test-context') as stream:
        ...     stream.fill(4).hex()
        '60489ecf'
        >>> stream.next_byte()  # doctest: +IGNORE_EXCEPTION_DETAIL
        Traceback (most recent call last):
            ...
        PrngError: stream has been wiped

    """

    def __init__(self, key: Buffer, context: Buffer, /) -> None:
        """Initialize the stream.

        Args:
            key:
                The 32-byte input key, usually the site key.  Not
                retained: only the extracted pseudorandom key is
                stored.
            context:
                The context string binding the stream to its use.
                Copied, and mixed verbatim into every block.

        Raises:
            PrngError: The key is not 32 bytes long.

        """
        if len(memoryview(key).cast('B')) != BLOCK_SIZE:
            msg = f'stream key must be {BLOCK_SIZE} bytes long'
            raise PrngError(msg)
        self._prk = bytearray(_hmac_sha256(HKDF_SALT, key))
        self._context = bytearray(context)
        self._counter = 0
        self._block = bytearray(BLOCK_SIZE)
        self._prev_block = bytearray(BLOCK_SIZE)
        # Force a refill on first use.
        self._pos = BLOCK_SIZE
        self._wiped = False

    def __enter__(self) -> Self:
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc_value: BaseException | None,
        exc_tb: types.TracebackType | None,
    ) -> Literal[False]:
        self.wipe()
        return False

    @property
    def blocks_generated(self) -> int:
        """The number of blocks generated so far."""
        return self._counter

    def wipe(self) -> None:
        """Overwrite all stream state with zeros.

        The stream cannot be used afterwards.  Idempotent.

        """
        for buf in (self._prk, self._context, self._block, self._prev_block):
            secure_buffers.wipe(buf)
        self._pos = BLOCK_SIZE
        self._wiped = True

    def _refill(self) -> None:
        """Generate the next block T(n) into the current block buffer.

        T(1) = HMAC(PRK, context || 0x01), and T(n) = HMAC(PRK, T(n-1)
        || context || n) for n > 1.

        Raises:
            StreamExhaustedError: The block counter would wrap.

        """
        if self._counter >= MAX_BLOCKS:
            raise StreamExhaustedError
        self._counter += 1
        counter_byte = bytes([self._counter])
        if self._counter == 1:
            block = _hmac_sha256(self._prk, self._context, counter_byte)
        else:
            block = _hmac_sha256(
                self._prk, self._prev_block, self._context, counter_byte
            )
        self._block[:] = block
        self._prev_block[:] = block
        self._pos = 0
        logger.debug('generated stream block %d', self._counter)

    def next_byte(self) -> int:
        """Return the next byte of the stream.

        Raises:
            PrngError: The stream has been wiped.
            StreamExhaustedError: The stream is exhausted.

        """
        if self._wiped:
            msg = 'stream has been wiped'
            raise PrngError(msg)
        if self._pos >= BLOCK_SIZE:
            self._refill()
        value = self._block[self._pos]
        self._pos += 1
        return value

    def fill(self, n: int, /) -> bytes:
        """Return the next `n` bytes of the stream."""
        return bytes(self.next_byte() for _ in range(n))

    def next_index(self, n: int, /) -> int:
        """Return an unbiased integer in the range 0, ..., `n` - 1.

        Draw bytes until one falls below the largest multiple of `n`
        not exceeding 256, then reduce it modulo `n`.  A plain modulo
        reduction would favor small results whenever `n` does not
        divide 256.

        Args:
            n:
                The size of the range.  Must be between 1 and 256
                (inclusive).

        Raises:
            ValueError: The range is empty or too large.

        Examples:
            >>> with HkdfStream(bytes(32), b'test-context') as stream:
            ...     [stream.next_index(10) for _ in range(5)]
            [6, 2, 8, 7, 0]

            Even `n = 1` consumes a byte:

            >>> with HkdfStream(bytes(32), b'test-context') as stream:
            ...     stream.next_index(1), stream.next_byte()
            (0, 72)

        """
        if not 1 <= n <= 256:  # noqa: PLR2004
            msg = f'invalid target range: {n!r}'
            raise ValueError(msg)
        limit = (256 // n) * n
        while True:
            value = self.next_byte()
            if value < limit:
                return value % n
