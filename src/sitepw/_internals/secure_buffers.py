# SPDX-FileCopyrightText: 2025 Marco Ricci <software@the13thletter.info>
#
# SPDX-License-Identifier: Zlib

"""Scoped handling of secret byte buffers.

Warning:
    Non-public module (implementation detail), provided for didactical and
    educational purposes only. Subject to change without notice, including
    removal.

Python gives no guarantees about copies made by the interpreter or by
extension modules, so wiping is best effort: we overwrite every mutable
buffer we own, and we avoid creating immutable copies of secret data
where the underlying library permits it.

"""

from __future__ import annotations

from typing import TYPE_CHECKING, Literal

if TYPE_CHECKING:
    import types

    from typing_extensions import Buffer, Self

__all__ = ('SecretBuffer', 'wipe')


def wipe(buf: bytearray | memoryview, /) -> None:
    """Overwrite a mutable buffer with zero bytes, in place."""
    view = memoryview(buf).cast('B')
    view[:] = bytes(len(view))
    view.release()


class SecretBuffer:
    """A `bytearray` that is wiped when its context exits.

    Wiping happens on every exit path, including exceptions.  The
    buffer stays valid (but all-zero) after wiping, so accidental late
    reads see no secret material.

    Examples:
        >>> with SecretBuffer(b'hunter2') as buf:
        ...     bytes(buf)
        b'hunter2'
        >>> bytes(buf)
        b'\\x00\\x00\\x00\\x00\\x00\\x00\\x00'

    """

    def __init__(self, data: Buffer | str | int = 0, /) -> None:
        """Initialize the buffer.

        Args:
            data:
                The initial contents.  Text strings are encoded as
                UTF-8; integers allocate a zero-filled buffer of that
                size.

        """
        if isinstance(data, str):
            self.data = bytearray(data.encode('UTF-8'))
        else:
            self.data = bytearray(data)

    def __len__(self) -> int:
        return len(self.data)

    def __enter__(self) -> bytearray:
        return self.data

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc_value: BaseException | None,
        exc_tb: types.TracebackType | None,
    ) -> Literal[False]:
        self.wipe()
        return False

    def wipe(self) -> None:
        """Overwrite the buffer contents with zero bytes."""
        wipe(self.data)

    @classmethod
    def adopt(cls, data: bytearray, /) -> Self:
        """Take ownership of an existing `bytearray`, without copying."""
        obj = cls()
        obj.data = data
        return obj
