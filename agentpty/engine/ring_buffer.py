"""Bounded replay buffer for terminal output.

Keeps the most recent output of a session so a consumer can reattach
without relying on the pty's own scrollback. Each chunk carries a
monotonic sequence number for incremental restores.
"""
from __future__ import annotations

from collections import deque

from .models import BufferChunk

# SGR "reset all attributes". Prepended whenever older bytes are dropped
# so a cut through an escape sequence cannot leave styling stuck.
RESET_SEQUENCE = b"\x1b[0m"


class RingBuffer:
    """Fixed-capacity chunk buffer. Drops oldest content when full.

    ``size`` never exceeds ``max_size``; the reset prefix counts towards
    the limit.
    """

    def __init__(self, max_size: int) -> None:
        if max_size <= len(RESET_SEQUENCE):
            raise ValueError(
                f"max_size must exceed {len(RESET_SEQUENCE)} bytes, got {max_size}"
            )
        self._max_size = max_size
        self._chunks: deque[BufferChunk] = deque()
        self._total = 0
        self._next_seq = 0

    @property
    def max_size(self) -> int:
        return self._max_size

    @property
    def size(self) -> int:
        return self._total

    @property
    def current_seq(self) -> int:
        """Latest sequence number handed out, or -1 if nothing was appended."""
        return self._next_seq - 1

    def append(self, data: bytes) -> int:
        """Append *data* and return its sequence number."""
        seq = self._next_seq
        self._next_seq += 1
        self._chunks.append(BufferChunk(seq=seq, data=data))
        self._total += len(data)

        if self._total <= self._max_size:
            return seq

        while self._total > self._max_size and len(self._chunks) > 1:
            dropped = self._chunks.popleft()
            self._total -= len(dropped.data)
        self._mark_truncated()
        return seq

    def _mark_truncated(self) -> None:
        """Prefix the oldest retained chunk with a reset, trimming to fit."""
        limit = self._max_size - len(RESET_SEQUENCE)
        # Drop whole chunks until the prefix fits, keeping at least one
        while self._total > limit and len(self._chunks) > 1:
            dropped = self._chunks.popleft()
            self._total -= len(dropped.data)

        head = self._chunks[0]
        body = head.data
        if body.startswith(RESET_SEQUENCE):
            body = body[len(RESET_SEQUENCE):]
            self._total -= len(RESET_SEQUENCE)
        if self._total > limit:
            # Only one chunk left and it is still too large: keep its tail
            overflow = self._total - limit
            body = body[overflow:]
            self._total -= overflow
        self._chunks[0] = BufferChunk(seq=head.seq, data=RESET_SEQUENCE + body)
        self._total += len(RESET_SEQUENCE)

    def get_chunks_since(self, after_seq: int) -> list[BufferChunk]:
        """All retained chunks with ``seq > after_seq``."""
        return [c for c in self._chunks if c.seq > after_seq]

    def to_bytes(self) -> bytes:
        return b"".join(c.data for c in self._chunks)

    def clear(self) -> None:
        """Drop all content. Sequence numbers keep increasing."""
        self._chunks.clear()
        self._total = 0

    def __len__(self) -> int:
        return self._total
