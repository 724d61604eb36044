"""Unit tests for chunk framing."""

from __future__ import annotations

import pytest
from fakes import RecordingWriter
from pydantic import ValidationError

from nailgun_client.errors import TransportError
from nailgun_client.protocol import (
    HEADER_SIZE,
    MAX_PAYLOAD_LENGTH,
    Chunk,
    ChunkHeader,
    ChunkType,
    ChunkWriter,
    decode_header,
    encode_chunk,
)


class _OversizedPayload(bytes):
    """Pretends to be larger than the length field allows."""

    def __len__(self) -> int:
        return MAX_PAYLOAD_LENGTH + 1


class TestChunkType:
    """Tests for the tag vocabulary."""

    def test_tags_match_wire_bytes(self) -> None:
        """Each chunk type maps to its documented tag byte."""
        expected = {
            ChunkType.ARGUMENT: b"A",
            ChunkType.ENVIRONMENT: b"E",
            ChunkType.DIRECTORY: b"D",
            ChunkType.COMMAND: b"C",
            ChunkType.STDIN: b"0",
            ChunkType.STDIN_EOF: b".",
            ChunkType.STDOUT: b"1",
            ChunkType.STDERR: b"2",
            ChunkType.START_INPUT: b"S",
            ChunkType.EXIT: b"X",
        }
        assert {t: t.tag for t in ChunkType} == expected

    def test_is_string_enum(self) -> None:
        assert ChunkType.EXIT == "X"
        assert ChunkType("1") is ChunkType.STDOUT


class TestEncodeChunk:
    """Tests for encode_chunk()."""

    def test_header_layout(self) -> None:
        """Header is a 4-byte big-endian length followed by the tag."""
        data = encode_chunk(ChunkType.ARGUMENT, b"--help")
        assert data == b"\x00\x00\x00\x06A--help"

    def test_empty_payload(self) -> None:
        assert encode_chunk(ChunkType.STDIN_EOF) == b"\x00\x00\x00\x00."

    def test_length_is_big_endian(self) -> None:
        payload = b"x" * 0x010203
        data = encode_chunk(ChunkType.STDOUT, payload)
        assert data[:5] == b"\x00\x01\x02\x031"
        assert data[5:] == payload

    def test_rejects_payload_beyond_length_field(self) -> None:
        with pytest.raises(ValueError, match="32-bit"):
            encode_chunk(ChunkType.STDIN, _OversizedPayload(b"x"))


class TestDecodeHeader:
    """Tests for decode_header()."""

    @pytest.mark.parametrize(
        "chunk_type,payload",
        [
            (ChunkType.ARGUMENT, b""),
            (ChunkType.ENVIRONMENT, b"HOME=/home/user"),
            (ChunkType.STDOUT, bytes(range(256)) * 70),
            (ChunkType.EXIT, b"-1"),
        ],
    )
    def test_round_trip(self, chunk_type: ChunkType, payload: bytes) -> None:
        """Decoding an encoded header yields the original length and type."""
        data = encode_chunk(chunk_type, payload)
        header = decode_header(data[:HEADER_SIZE])

        assert header == ChunkHeader(len(payload), chunk_type.value)
        assert header.chunk_type() is chunk_type
        assert data[HEADER_SIZE:] == payload

    def test_max_length(self) -> None:
        header = decode_header(b"\xff\xff\xff\xff1")
        assert header.length == MAX_PAYLOAD_LENGTH

    def test_unknown_tag_is_preserved(self) -> None:
        """Unknown tags decode without error so callers can report them."""
        header = decode_header(b"\x00\x00\x00\x03Z")
        assert header.type == "Z"
        assert header.chunk_type() is None

    @pytest.mark.parametrize("data", [b"", b"\x00\x00\x00\x00", b"\x00\x00\x00\x00XX"])
    def test_wrong_size_raises(self, data: bytes) -> None:
        with pytest.raises(ValueError):
            decode_header(data)


class TestChunkModel:
    """Tests for the Chunk model."""

    def test_length_follows_payload(self) -> None:
        chunk = Chunk(type=ChunkType.STDIN, payload=b"abc")
        assert chunk.length == 3
        assert chunk.to_bytes() == b"\x00\x00\x00\x030abc"

    def test_text_uses_utf8(self) -> None:
        chunk = Chunk.text(ChunkType.ARGUMENT, "héllo")
        assert chunk.payload == "héllo".encode()

    def test_text_preserves_undecodable_os_strings(self) -> None:
        """Surrogate-escaped bytes from the OS are sent unchanged."""
        raw = b"PATH=/opt/\xff"
        chunk = Chunk.text(ChunkType.ENVIRONMENT, raw.decode("utf-8", "surrogateescape"))
        assert chunk.payload == raw

    def test_is_immutable(self) -> None:
        chunk = Chunk(type=ChunkType.COMMAND, payload=b"Main")
        with pytest.raises(ValidationError):
            chunk.payload = b"Other"  # type: ignore[misc]

    def test_rejects_unknown_type(self) -> None:
        with pytest.raises(ValidationError):
            Chunk(type="Z", payload=b"")


class TestChunkWriter:
    """Tests for ChunkWriter."""

    @pytest.mark.asyncio
    async def test_writes_whole_frames(self) -> None:
        writer = RecordingWriter()
        chunk_writer = ChunkWriter(writer)  # type: ignore[arg-type]

        await chunk_writer.send(ChunkType.ARGUMENT, b"one")
        await chunk_writer.send_chunk(Chunk(type=ChunkType.COMMAND, payload=b"Main"))

        assert writer.frames == [("A", b"one"), ("C", b"Main")]

    @pytest.mark.asyncio
    async def test_one_write_per_frame(self) -> None:
        """Each frame reaches the transport in a single write call."""
        writer = RecordingWriter()
        chunk_writer = ChunkWriter(writer)  # type: ignore[arg-type]

        await chunk_writer.send(ChunkType.STDIN, b"x" * 100_000)
        await chunk_writer.send(ChunkType.STDIN_EOF)

        assert writer.writes == 2
        assert [t for t, _ in writer.frames] == ["0", "."]

    @pytest.mark.asyncio
    async def test_write_failure_is_transport_error(self) -> None:
        """A failed write surfaces as TransportError, never as a silent truncation."""
        writer = RecordingWriter(fail_after=0)
        chunk_writer = ChunkWriter(writer)  # type: ignore[arg-type]

        with pytest.raises(TransportError) as exc_info:
            await chunk_writer.send(ChunkType.ARGUMENT, b"one")

        assert isinstance(exc_info.value.detail, ConnectionResetError)
