"""Persisted generator state: the 59-integer blob and its binary framing.

A state blob is ``[seed, cursor_a, cursor_b, table[0], ..., table[55]]``.
``table[0]`` is never written by seeding or sampling, so a non-zero value at
blob index 3 marks the blob as corrupted.

Binary frame (used for streams):

    +----------------------+------------------------------------------+
    | length: u32, big end | payload: MessagePack array of 59 ints    |
    +----------------------+------------------------------------------+

A blob is accepted only if every element is a 32-bit integer, the sentinel is
zero, both cursors index the table and every other slot lies in
``[0, 2**31 - 1)``.

``get_state_codec()`` may be called from any thread. Each thread encodes with
its own msgpack encoder, while the typed decoder holds no per-call state and
is shared.

Usage:
    >>> from klaw_chaos import ChaosEngine
    >>> from klaw_chaos.persistence import decode_state, encode_state
    >>> engine = ChaosEngine(42)
    >>> frame = encode_state(engine.save_state())
    >>> ChaosEngine.from_state(decode_state(frame)).next_int() == engine.next_int()
    True
"""

from __future__ import annotations

import threading
from typing import TYPE_CHECKING, Annotated, BinaryIO

import anyio
import msgspec
from anyio.streams.buffered import BufferedByteReceiveStream

from klaw_chaos._core import MAX_I32, MIN_I32, TABLE_SIZE, GeneratorState
from klaw_chaos.errors import StateCorrupted, StateCorruptedError

if TYPE_CHECKING:
    from collections.abc import Sequence

    from anyio.abc import AnyByteReceiveStream, AnyByteSendStream

__all__ = [
    'HEADER_SIZE',
    'MAX_FRAME_SIZE',
    'STATE_SIZE',
    'PersistedState',
    'StateCodec',
    'aread_state',
    'awrite_state',
    'decode_state',
    'encode_state',
    'get_state_codec',
    'read_state',
    'validate_state',
    'write_state',
]

STATE_SIZE: int = TABLE_SIZE + 3
"""Number of integers in a state blob: seed, two cursors and the table."""

SENTINEL_INDEX: int = 3
"""Blob index of ``table[0]``, which must always be zero."""

HEADER_SIZE: int = 4
"""Size of the big-endian length prefix."""

MAX_FRAME_SIZE: int = 1024
"""Upper bound on a payload; 59 msgpack ints never need more than ~300 bytes."""

Int32 = Annotated[int, msgspec.Meta(ge=MIN_I32, le=MAX_I32)]


def validate_state(blob: Sequence[int]) -> StateCorrupted | None:
    """Check a state blob without raising.

    Returns:
        None if the blob can be loaded, else a StateCorrupted describing why not.
    """
    if len(blob) != STATE_SIZE:
        return StateCorrupted(f'expected {STATE_SIZE} integers, got {len(blob)}')
    for index, value in enumerate(blob):
        if isinstance(value, bool) or not isinstance(value, int):
            return StateCorrupted(f'element {index} is not an integer')
        if not MIN_I32 <= value <= MAX_I32:
            return StateCorrupted(f'element {index} does not fit in 32 bits')
    if blob[SENTINEL_INDEX] != 0:
        return StateCorrupted('sentinel slot is not zero')
    for index in (1, 2):
        if not 0 <= blob[index] < TABLE_SIZE:
            return StateCorrupted(f'cursor {blob[index]} is outside the table')
    for index in range(SENTINEL_INDEX + 1, STATE_SIZE):
        if not 0 <= blob[index] < MAX_I32:
            return StateCorrupted(f'table slot {index - SENTINEL_INDEX} holds {blob[index]}, outside [0, {MAX_I32})')
    return None


class PersistedState(msgspec.Struct, frozen=True, gc=False):
    """Typed view of a state blob.

    Attributes:
        seed: Seed the table was derived from.
        cursor_a: Write cursor.
        cursor_b: Subtract cursor.
        table: All 56 table slots, sentinel included.
    """

    seed: int
    cursor_a: int
    cursor_b: int
    table: tuple[int, ...]

    @classmethod
    def from_blob(cls, blob: Sequence[int]) -> PersistedState:
        """Validate and wrap a 59-integer blob.

        Raises:
            StateCorruptedError: If the blob fails validation.
        """
        problem = validate_state(blob)
        if problem is not None:
            raise problem.to_exception()
        return cls(blob[0], blob[1], blob[2], tuple(blob[SENTINEL_INDEX:]))

    @classmethod
    def capture(cls, state: GeneratorState) -> PersistedState:
        """Snapshot a live generator state."""
        return cls(state.seed, state.cursor_a, state.cursor_b, tuple(state.table))

    def to_blob(self) -> list[int]:
        """Flatten to ``[seed, cursor_a, cursor_b, *table]``."""
        return [self.seed, self.cursor_a, self.cursor_b, *self.table]

    def restore(self) -> GeneratorState:
        """Build a fresh GeneratorState holding this snapshot."""
        return GeneratorState(self.seed, list(self.table), self.cursor_a, self.cursor_b)


class StateCodec:
    """Encoder/decoder for framed state blobs, usable from several threads.

    Encoding goes through a per-thread msgpack encoder; decoding shares one
    ``list[Int32]`` decoder so out-of-range integers fail at decode time.
    """

    __slots__ = ('_decoder', '_local')

    def __init__(self) -> None:
        self._local = threading.local()
        self._decoder: msgspec.msgpack.Decoder[list[int]] = msgspec.msgpack.Decoder(list[Int32])

    @property
    def _encoder(self) -> msgspec.msgpack.Encoder:
        encoder = getattr(self._local, 'encoder', None)
        if encoder is None:
            encoder = msgspec.msgpack.Encoder()
            self._local.encoder = encoder
        return encoder

    def encode(self, blob: Sequence[int]) -> bytes:
        """Encode a blob into a length-prefixed frame.

        Raises:
            StateCorruptedError: If the blob fails validation.
        """
        problem = validate_state(blob)
        if problem is not None:
            raise problem.to_exception()
        payload = self._encoder.encode(list(blob))
        return len(payload).to_bytes(HEADER_SIZE, 'big') + payload

    def frame_length(self, header: bytes) -> int:
        """Parse a length prefix.

        Raises:
            StateCorruptedError: If the header is short or announces an oversized payload.
        """
        if len(header) != HEADER_SIZE:
            raise StateCorruptedError(f'truncated header ({len(header)} of {HEADER_SIZE} bytes)')
        length = int.from_bytes(header, 'big')
        if length > MAX_FRAME_SIZE:
            raise StateCorruptedError(f'frame of {length} bytes exceeds {MAX_FRAME_SIZE}')
        return length

    def decode_payload(self, payload: bytes | bytearray | memoryview) -> list[int]:
        """Decode and validate a frame payload (without its length prefix).

        Raises:
            StateCorruptedError: If the payload is malformed or the blob is invalid.
        """
        try:
            blob = self._decoder.decode(payload)
        except msgspec.DecodeError as exc:
            raise StateCorruptedError(f'undecodable payload ({exc})') from exc
        problem = validate_state(blob)
        if problem is not None:
            raise problem.to_exception()
        return blob

    def decode(self, frame: bytes | bytearray | memoryview) -> list[int]:
        """Decode a complete length-prefixed frame.

        Raises:
            StateCorruptedError: If the frame is truncated, has trailing bytes,
                or holds an invalid blob.
        """
        view = memoryview(frame)
        length = self.frame_length(bytes(view[:HEADER_SIZE]))
        payload = view[HEADER_SIZE:]
        if len(payload) != length:
            raise StateCorruptedError(f'frame announces {length} payload bytes, found {len(payload)}')
        return self.decode_payload(payload)


_codec: StateCodec | None = None
_codec_lock = threading.Lock()


def get_state_codec() -> StateCodec:
    """Return the process-wide StateCodec."""
    global _codec  # noqa: PLW0603

    if _codec is None:
        with _codec_lock:
            if _codec is None:
                _codec = StateCodec()
    return _codec


def encode_state(blob: Sequence[int]) -> bytes:
    """Encode a state blob into a length-prefixed frame."""
    return get_state_codec().encode(blob)


def decode_state(frame: bytes | bytearray | memoryview) -> list[int]:
    """Decode a length-prefixed frame back into a state blob."""
    return get_state_codec().decode(frame)


# --- Streams ---


def write_state(stream: BinaryIO, blob: Sequence[int]) -> None:
    """Write one framed blob to a binary stream.

    Errors raised by the stream propagate unchanged.
    """
    stream.write(encode_state(blob))


def read_state(stream: BinaryIO) -> list[int]:
    """Read exactly one framed blob from a binary stream.

    Raises:
        StateCorruptedError: If the stream ends mid-frame or the frame is invalid.
            Errors raised by the stream itself propagate unchanged.
    """
    codec = get_state_codec()
    length = codec.frame_length(stream.read(HEADER_SIZE))
    payload = stream.read(length)
    if len(payload) != length:
        raise StateCorruptedError(f'truncated payload ({len(payload)} of {length} bytes)')
    return codec.decode_payload(payload)


async def awrite_state(stream: AnyByteSendStream, blob: Sequence[int]) -> None:
    """Send one framed blob on an anyio byte stream."""
    await stream.send(encode_state(blob))


async def aread_state(stream: AnyByteReceiveStream | BufferedByteReceiveStream) -> list[int]:
    """Receive exactly one framed blob from an anyio byte stream.

    Plain streams are wrapped in a BufferedByteReceiveStream, which may read
    past the end of the frame; pass a buffered stream to keep those bytes.

    Raises:
        StateCorruptedError: If the stream ends mid-frame or the frame is invalid.
            Other stream errors propagate unchanged.
    """
    if not isinstance(stream, BufferedByteReceiveStream):
        stream = BufferedByteReceiveStream(stream)

    codec = get_state_codec()
    try:
        length = codec.frame_length(await stream.receive_exactly(HEADER_SIZE))
        payload = await stream.receive_exactly(length)
    except anyio.IncompleteRead as exc:
        raise StateCorruptedError('stream ended in the middle of a frame') from exc
    return codec.decode_payload(payload)
