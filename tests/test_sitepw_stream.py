# SPDX-FileCopyrightText: 2025 Marco Ricci <software@the13thletter.info>
#
# SPDX-License-Identifier: Zlib

"""Test the keyed byte stream sitepw.stream.HkdfStream."""

from __future__ import annotations

import collections
import hashlib
import hmac

import hypothesis
import pytest
from hypothesis import strategies

import tests
from sitepw import stream


def reference_blocks(key: bytes, context: bytes, count: int) -> bytes:
    """Compute the first `count` stream blocks with the standard library."""
    prk = hmac.new(stream.HKDF_SALT, key, hashlib.sha256).digest()
    blocks: list[bytes] = []
    prev = b''
    for n in range(1, count + 1):
        prev = hmac.new(
            prk, prev + context + bytes([n]), hashlib.sha256
        ).digest()
        blocks.append(prev)
    return b''.join(blocks)


class TestGoldenOutput:
    """Test the stream against known outputs."""

    def test_100_golden_bytes(self) -> None:
        """The all-zero key yields the known byte stream."""
        with stream.HkdfStream(
            tests.GOLDEN_STREAM_KEY, tests.GOLDEN_STREAM_CONTEXT
        ) as rng:
            assert rng.fill(64) == tests.GOLDEN_STREAM_BYTES
            assert rng.blocks_generated == 2

    def test_101_golden_indices(self) -> None:
        """The all-zero key yields the known `next_index(10)` sequence."""
        with stream.HkdfStream(
            tests.GOLDEN_STREAM_KEY, tests.GOLDEN_STREAM_CONTEXT
        ) as rng:
            indices = [rng.next_index(10) for _ in range(20)]
        assert indices == tests.GOLDEN_STREAM_INDICES

    @hypothesis.given(
        key=strategies.binary(min_size=32, max_size=32),
        context=strategies.binary(max_size=100),
    )
    def test_102_feedback_construction(
        self, key: bytes, context: bytes
    ) -> None:
        """Each block chains the previous block, context and counter."""
        with stream.HkdfStream(key, context) as rng:
            assert rng.fill(3 * stream.BLOCK_SIZE) == reference_blocks(
                key, context, 3
            )

    @hypothesis.given(
        key=strategies.binary(min_size=32, max_size=32),
        context=strategies.binary(max_size=100),
    )
    def test_103_determinism(self, key: bytes, context: bytes) -> None:
        """Identical inputs yield identical streams."""
        with stream.HkdfStream(key, context) as rng1:
            with stream.HkdfStream(bytearray(key), bytearray(context)) as rng2:
                assert rng1.fill(40) == rng2.fill(40)

    def test_104_context_separates_streams(self) -> None:
        """Different contexts yield different streams."""
        with stream.HkdfStream(bytes(32), b'context-a') as rng1:
            with stream.HkdfStream(bytes(32), b'context-b') as rng2:
                assert rng1.fill(32) != rng2.fill(32)


class TestNextIndex:
    """Test unbiased index sampling."""

    @hypothesis.given(
        key=strategies.binary(min_size=32, max_size=32),
        n=strategies.integers(min_value=1, max_value=256),
    )
    def test_100_in_range(self, key: bytes, n: int) -> None:
        """Results lie in the requested range."""
        with stream.HkdfStream(key, b'range') as rng:
            for _ in range(50):
                assert 0 <= rng.next_index(n) < n

    def test_101_rejection_sampling(self) -> None:
        """Bytes at or above the largest multiple of `n` are skipped."""
        key, context = tests.GOLDEN_STREAM_KEY, tests.GOLDEN_STREAM_CONTEXT
        n = 100
        limit = (256 // n) * n
        expected = [b % n for b in tests.GOLDEN_STREAM_BYTES if b < limit]
        with stream.HkdfStream(key, context) as rng:
            actual = [rng.next_index(n) for _ in range(len(expected))]
            assert rng.blocks_generated == 2
        assert actual == expected

    def test_102_index_one_consumes_a_byte(self) -> None:
        """`next_index(1)` returns 0, but still consumes a byte."""
        with stream.HkdfStream(
            tests.GOLDEN_STREAM_KEY, tests.GOLDEN_STREAM_CONTEXT
        ) as rng:
            assert rng.next_index(1) == 0
            assert rng.next_byte() == tests.GOLDEN_STREAM_BYTES[1]

    def test_103_index_256_is_identity(self) -> None:
        """`next_index(256)` never rejects."""
        with stream.HkdfStream(
            tests.GOLDEN_STREAM_KEY, tests.GOLDEN_STREAM_CONTEXT
        ) as rng:
            actual = bytes(rng.next_index(256) for _ in range(64))
        assert actual == tests.GOLDEN_STREAM_BYTES

    @pytest.mark.parametrize('n', [0, -1, 257, 1000])
    def test_104_invalid_range(self, n: int) -> None:
        """Empty or oversized ranges are rejected."""
        with stream.HkdfStream(bytes(32), b'') as rng:
            with pytest.raises(ValueError, match='invalid target range'):
                rng.next_index(n)

    @pytest.mark.parametrize('n', [3, 10, 93])
    def test_200_uniformity(self, n: int) -> None:
        """Results are roughly uniform (chi-squared sanity check)."""
        samples_per_bucket = 100
        counts: collections.Counter[int] = collections.Counter()
        # Stay well below the block limit by using several streams.
        for i in range(n):
            with stream.HkdfStream(bytes(32), b'uniformity-%d' % i) as rng:
                for _ in range(samples_per_bucket):
                    counts[rng.next_index(n)] += 1
        total = n * samples_per_bucket
        expected = total / n
        chi_squared = sum(
            (counts[i] - expected) ** 2 / expected for i in range(n)
        )
        assert set(counts) <= set(range(n))
        # Generous bound: mean n - 1, standard deviation sqrt(2(n - 1)).
        assert chi_squared < (n - 1) + 8 * (2 * (n - 1)) ** 0.5


class TestLifecycle:
    """Test key checks, exhaustion and wiping."""

    @pytest.mark.parametrize('size', [0, 16, 31, 33, 64])
    def test_100_bad_key_length(self, size: int) -> None:
        """Keys must be exactly 32 bytes long."""
        with pytest.raises(stream.PrngError, match='32 bytes'):
            stream.HkdfStream(bytes(size), b'')

    def test_101_exhaustion(self) -> None:
        """The stream refuses to wrap its single-byte block counter."""
        with stream.HkdfStream(bytes(32), b'exhaust') as rng:
            rng.fill(stream.MAX_BLOCKS * stream.BLOCK_SIZE)
            assert rng.blocks_generated == stream.MAX_BLOCKS
            with pytest.raises(stream.StreamExhaustedError):
                rng.next_byte()
        assert issubclass(stream.StreamExhaustedError, stream.PrngError)

    def test_102_wipe_on_exit(self) -> None:
        """Leaving the context wipes all internal buffers."""
        with stream.HkdfStream(bytes(range(32)), b'wipe me') as rng:
            rng.fill(40)
            buffers = [rng._prk, rng._context, rng._block, rng._prev_block]
            assert any(any(buf) for buf in buffers)
        assert not any(any(buf) for buf in buffers)
        with pytest.raises(stream.PrngError, match='wiped'):
            rng.next_byte()

    def test_103_wipe_on_error(self) -> None:
        """The stream is wiped even if the enclosing block raises."""
        with pytest.raises(RuntimeError):  # noqa: PT012
            with stream.HkdfStream(bytes(range(32)), b'ctx') as rng:
                rng.fill(1)
                raise RuntimeError
        assert not any(rng._prk)
        assert not any(rng._context)

    def test_104_wipe_is_idempotent(self) -> None:
        """Wiping twice is harmless."""
        rng = stream.HkdfStream(bytes(32), b'')
        rng.wipe()
        rng.wipe()
        with pytest.raises(stream.PrngError):
            rng.fill(1)

    def test_105_inputs_are_copied(self) -> None:
        """Mutating the caller's buffers does not affect the stream."""
        key = bytearray(tests.GOLDEN_STREAM_KEY)
        context = bytearray(tests.GOLDEN_STREAM_CONTEXT)
        with stream.HkdfStream(key, context) as rng:
            key[0] ^= 0xFF
            context[0] ^= 0xFF
            assert rng.fill(64) == tests.GOLDEN_STREAM_BYTES
