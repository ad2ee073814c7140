"""Tests for state blobs, binary frames and stream persistence."""

from __future__ import annotations

import io

import anyio
import msgspec
import pytest
from hypothesis import given, settings
from klaw_chaos import (
    ChaosEngine,
    PersistedState,
    StateCorrupted,
    StateCorruptedError,
    decode_state,
    encode_state,
    validate_state,
)
from klaw_chaos._core import MAX_I32, MIN_I32
from klaw_chaos.persistence import (
    HEADER_SIZE,
    MAX_FRAME_SIZE,
    STATE_SIZE,
    get_state_codec,
    read_state,
    write_state,
)

from tests.strategies import sample_counts, seeds


def frame(payload: bytes) -> bytes:
    return len(payload).to_bytes(HEADER_SIZE, 'big') + payload


class TestSaveLoad:
    """save_state / load_state on the engine."""

    def test_blob_layout(self) -> None:
        """A fresh blob is [seed, 0, 21, 0, table...]."""
        blob = ChaosEngine(0).save_state()
        assert len(blob) == STATE_SIZE == 59
        assert blob[:4] == [0, 0, 21, 0]

    @given(seed=seeds, burned=sample_counts)
    @settings(max_examples=50)
    def test_resume_continues_sequence(self, seed: int, burned: int) -> None:
        """A restored engine continues exactly where the saved one stopped."""
        engine = ChaosEngine(seed)
        for _ in range(burned):
            engine.next_sample()
        restored = ChaosEngine.from_state(engine.save_state())
        assert restored.seed == seed
        assert [restored.next_sample() for _ in range(100)] == [engine.next_sample() for _ in range(100)]

    def test_load_replaces_state(self) -> None:
        """load_state overwrites seed, cursors and table."""
        source = ChaosEngine(42)
        source.next_ints(10)
        target = ChaosEngine(1)
        target.load_state(source.save_state())
        assert target.seed == 42
        assert target.save_state() == source.save_state()
        assert target.next_ints(5) == source.next_ints(5)

    def test_saved_blob_is_a_copy(self) -> None:
        """Mutating a saved blob does not touch the engine."""
        engine = ChaosEngine(3)
        blob = engine.save_state()
        blob[10] += 1
        assert engine.save_state() == ChaosEngine(3).save_state()

    def test_reset_after_load(self) -> None:
        """reset() after loading restarts the loaded seed."""
        engine = ChaosEngine(1)
        engine.load_state(ChaosEngine(77).save_state())
        engine.next_ints(4)
        engine.reset()
        assert engine.next_ints(4) == ChaosEngine(77).next_ints(4)

    def test_bad_blob_leaves_state_untouched(self) -> None:
        """A rejected blob does not modify the engine."""
        engine = ChaosEngine(5)
        before = engine.save_state()
        with pytest.raises(StateCorruptedError):
            engine.load_state(before[:-1])
        assert engine.save_state() == before


class TestValidateState:
    """Blob validation."""

    def test_valid_blob(self) -> None:
        """A saved blob validates."""
        assert validate_state(ChaosEngine(9).save_state()) is None

    @pytest.mark.parametrize('length', [0, 58, 60])
    def test_wrong_length(self, length: int) -> None:
        """Blobs must hold exactly 59 integers."""
        blob = (ChaosEngine(9).save_state() * 2)[:length]
        problem = validate_state(blob)
        assert isinstance(problem, StateCorrupted)
        assert str(length) in problem.reason

    def test_nonzero_sentinel(self) -> None:
        """A non-zero table[0] marks corruption."""
        blob = ChaosEngine(9).save_state()
        blob[3] = 1
        with pytest.raises(StateCorruptedError, match='sentinel'):
            ChaosEngine.from_state(blob)

    @pytest.mark.parametrize(
        ('index', 'value'),
        [(1, 56), (2, -1), (10, 2**31), (10, 1.0), (10, True), (0, '1')],
    )
    def test_invalid_values(self, index: int, value: object) -> None:
        """Cursors, table values and types are checked."""
        blob: list[object] = list(ChaosEngine(9).save_state())
        blob[index] = value
        assert validate_state(blob) is not None  # type: ignore[arg-type]
        with pytest.raises(StateCorruptedError):
            PersistedState.from_blob(blob)  # type: ignore[arg-type]

    @pytest.mark.parametrize(('index', 'value'), [(4, MAX_I32), (25, MIN_I32), (30, -1), (58, MAX_I32)])
    def test_table_slot_outside_sample_range(self, index: int, value: int) -> None:
        """Table slots must lie in [0, MAX_I32) even though they fit in 32 bits."""
        blob = ChaosEngine(1).save_state()
        blob[index] = value
        problem = validate_state(blob)
        assert problem is not None
        assert f'table slot {index - 3}' in problem.reason
        with pytest.raises(StateCorruptedError, match='table slot'):
            ChaosEngine.from_state(blob)

    def test_extreme_slots_cannot_escape_sample_range(self) -> None:
        """A blob pairing MAX_I32 with MIN_I32 slots is refused before sampling."""
        blob = ChaosEngine(1).save_state()
        blob[4], blob[25] = MAX_I32, MIN_I32
        with pytest.raises(StateCorruptedError):
            ChaosEngine(7).load_state(blob)
        with pytest.raises(StateCorruptedError):
            decode_state(frame(msgspec.msgpack.encode(blob)))

    def test_error_struct_round_trip(self) -> None:
        """StateCorruptedError converts to and from its struct form."""
        error = StateCorrupted('sentinel slot is not zero').to_exception()
        assert isinstance(error, StateCorruptedError)
        assert error.reason == 'sentinel slot is not zero'
        assert error.to_struct() == StateCorrupted('sentinel slot is not zero')
        assert 'invalid or corrupted' in str(error)


class TestPersistedState:
    """Typed snapshot view."""

    def test_fields(self) -> None:
        """from_blob splits seed, cursors and table."""
        snapshot = PersistedState.from_blob(ChaosEngine(4).save_state())
        assert (snapshot.seed, snapshot.cursor_a, snapshot.cursor_b) == (4, 0, 21)
        assert len(snapshot.table) == 56
        assert snapshot.table[0] == 0

    def test_to_blob_round_trip(self) -> None:
        """to_blob reproduces the saved blob."""
        blob = ChaosEngine(4).save_state()
        assert PersistedState.from_blob(blob).to_blob() == blob

    def test_msgspec_json(self) -> None:
        """Snapshots serialize with msgspec like any other struct."""
        snapshot = PersistedState.from_blob(ChaosEngine(4).save_state())
        decoded = msgspec.json.decode(msgspec.json.encode(snapshot), type=PersistedState)
        assert decoded == snapshot


class TestFrames:
    """Length-prefixed MessagePack frames."""

    def test_round_trip(self) -> None:
        """decode_state(encode_state(blob)) == blob."""
        blob = ChaosEngine(123).save_state()
        assert decode_state(encode_state(blob)) == blob

    def test_header(self) -> None:
        """The frame starts with the big-endian payload length."""
        encoded = encode_state(ChaosEngine(123).save_state())
        assert int.from_bytes(encoded[:HEADER_SIZE], 'big') == len(encoded) - HEADER_SIZE

    def test_encode_rejects_invalid_blob(self) -> None:
        """Invalid blobs never reach the wire."""
        with pytest.raises(StateCorruptedError):
            encode_state([0] * 58)

    def test_truncated_frame(self) -> None:
        """A frame cut short is corrupted."""
        encoded = encode_state(ChaosEngine(1).save_state())
        with pytest.raises(StateCorruptedError):
            decode_state(encoded[:-3])
        with pytest.raises(StateCorruptedError, match='header'):
            decode_state(encoded[:2])

    def test_trailing_bytes(self) -> None:
        """Extra bytes after the payload are rejected."""
        encoded = encode_state(ChaosEngine(1).save_state())
        with pytest.raises(StateCorruptedError):
            decode_state(encoded + b'\x00')

    def test_oversized_header(self) -> None:
        """Headers announcing huge payloads are rejected before reading."""
        with pytest.raises(StateCorruptedError, match='exceeds'):
            get_state_codec().frame_length((MAX_FRAME_SIZE + 1).to_bytes(HEADER_SIZE, 'big'))

    def test_garbage_payload(self) -> None:
        """Payloads that are not an integer array are corrupted."""
        with pytest.raises(StateCorruptedError, match='undecodable'):
            decode_state(frame(b'\xc1\xc1\xc1'))
        with pytest.raises(StateCorruptedError):
            decode_state(frame(msgspec.msgpack.encode(['x'] * 59)))

    def test_payload_outside_32_bits(self) -> None:
        """Decoded integers must fit in 32 bits."""
        blob = ChaosEngine(1).save_state()
        blob[20] = 2**40
        with pytest.raises(StateCorruptedError):
            decode_state(frame(msgspec.msgpack.encode(blob)))

    def test_payload_with_bad_sentinel(self) -> None:
        """Decoded blobs are validated like in-memory ones."""
        blob = ChaosEngine(1).save_state()
        blob[3] = 7
        with pytest.raises(StateCorruptedError, match='sentinel'):
            decode_state(frame(msgspec.msgpack.encode(blob)))


class TestBinaryStreams:
    """Synchronous stream persistence."""

    def test_engine_round_trip(self) -> None:
        """save_state_to / load_state_from through a BytesIO."""
        source = ChaosEngine(55)
        source.next_ints(7)
        buffer = io.BytesIO()
        source.save_state_to(buffer)
        buffer.seek(0)

        target = ChaosEngine(1)
        target.load_state_from(buffer)
        assert target.next_ints(10) == source.next_ints(10)

    def test_consecutive_frames(self) -> None:
        """Each read consumes exactly one frame."""
        first, second = ChaosEngine(1).save_state(), ChaosEngine(2).save_state()
        buffer = io.BytesIO()
        write_state(buffer, first)
        write_state(buffer, second)
        buffer.seek(0)
        assert read_state(buffer) == first
        assert read_state(buffer) == second

    def test_truncated_stream(self) -> None:
        """A stream ending mid-frame is corrupted."""
        encoded = encode_state(ChaosEngine(1).save_state())
        with pytest.raises(StateCorruptedError, match='truncated payload'):
            read_state(io.BytesIO(encoded[:-1]))

    def test_empty_stream(self) -> None:
        """An empty stream has no header."""
        with pytest.raises(StateCorruptedError, match='header'):
            ChaosEngine(1).load_state_from(io.BytesIO())

    def test_stream_errors_propagate(self) -> None:
        """I/O errors from the stream are not rewrapped."""
        buffer = io.BytesIO()
        buffer.close()
        with pytest.raises(ValueError, match='closed file'):
            ChaosEngine(1).save_state_to(buffer)


@pytest.mark.anyio
class TestAsyncStreams:
    """anyio stream persistence."""

    async def test_engine_round_trip(self) -> None:
        """asave_state_to / aload_state_from through a memory stream."""
        send, receive = anyio.create_memory_object_stream[bytes](4)
        source = ChaosEngine(808)
        source.next_ints(3)
        target = ChaosEngine(1)
        async with send, receive:
            await source.asave_state_to(send)
            await target.aload_state_from(receive)
        assert target.next_ints(10) == source.next_ints(10)

    async def test_split_chunks(self) -> None:
        """A frame delivered in several chunks is reassembled."""
        send, receive = anyio.create_memory_object_stream[bytes](16)
        encoded = encode_state(ChaosEngine(9).save_state())
        async with send, receive:
            for start in range(0, len(encoded), 50):
                await send.send(encoded[start : start + 50])
            target = ChaosEngine(1)
            await target.aload_state_from(receive)
        assert target.save_state() == ChaosEngine(9).save_state()

    async def test_truncated_stream(self) -> None:
        """A stream closed mid-frame is corrupted."""
        send, receive = anyio.create_memory_object_stream[bytes](4)
        encoded = encode_state(ChaosEngine(9).save_state())
        async with receive:
            async with send:
                await send.send(encoded[:10])
            with pytest.raises(StateCorruptedError, match='middle of a frame'):
                await ChaosEngine(1).aload_state_from(receive)
