"""
Primary-key generators compared by the benchmark.

Every generator writes exactly 16 bytes into a caller-owned buffer:

- random: a version 4 identifier in GUID byte order, the baseline
- time-ordered: a 60-bit tick count first, so keys sort by creation time
- time-ordered (broken): the same layout after a round trip through the
  canonical text form and a GUID parser, run on an accelerated clock
"""

from __future__ import annotations

import enum
import os
import time
import uuid
from typing import Optional, Protocol, Union

from .errors import GenerationError


KEY_SIZE = 16

# 100 ns intervals between 1582-10-15 (Gregorian reform) and 1970-01-01.
GREGORIAN_TO_UNIX_TICKS = 0x01B21DD213814000

VERSION_MASK = 0x0F
VERSION_TAG = 0x10
VARIANT_MASK = 0x3F
VARIANT_TAG = 0x80

TIME_SCALE = 1_000_000.0

_PROCESS_START_NS = time.time_ns()

Buffer = Union[bytearray, memoryview]


class GeneratorVariant(str, enum.Enum):
    RANDOM = "random"
    TIME_ORDERED = "time_ordered"
    TIME_ORDERED_TRUNCATED = "time_ordered_truncated"


class KeyGenerator(Protocol):
    def name(self) -> str:
        ...

    def fill(self, buffer: Buffer, now_ns: Optional[int] = None) -> None:
        ...


def _check_buffer(buffer: Buffer) -> None:
    if len(buffer) != KEY_SIZE:
        raise GenerationError(f"Key buffer must be {KEY_SIZE} bytes, got {len(buffer)}")


def ticks_since_reform(now_ns: int) -> int:
    """Convert Unix nanoseconds to 100 ns ticks since the Gregorian reform."""
    return now_ns // 100 + GREGORIAN_TO_UNIX_TICKS


def write_time_ordered(buffer: Buffer, ticks: int) -> None:
    """
    Lay out a time-ordered key.

    Bytes 0-7 carry the tick count most significant byte first, with the top
    nibble replaced by the version tag. Bytes 8-15 are random, with the two
    high bits of byte 8 set to the variant tag.
    """
    _check_buffer(buffer)
    prefix = (ticks & 0xFFFF_FFFF_FFFF_FFFF).to_bytes(8, "big")
    buffer[0] = (prefix[0] & VERSION_MASK) | VERSION_TAG
    buffer[1:8] = prefix[1:]
    buffer[8:16] = os.urandom(8)
    buffer[8] = (buffer[8] & VARIANT_MASK) | VARIANT_TAG


def roundtrip_as_guid(key: bytes) -> bytes:
    """
    Render a key as canonical text and parse it back as a GUID.

    The GUID encoding stores its first three fields little-endian, so bytes
    0-7 come back as 3,2,1,0,5,4,7,6. Bytes 8-15 are unchanged.
    """
    text = str(uuid.UUID(bytes=bytes(key)))
    return uuid.UUID(text).bytes_le


class RandomKeyGenerator:
    def name(self) -> str:
        return "random_uuid"

    def fill(self, buffer: Buffer, now_ns: Optional[int] = None) -> None:
        _check_buffer(buffer)
        buffer[:] = uuid.uuid4().bytes_le


class TimeOrderedKeyGenerator:
    def name(self) -> str:
        return "time_ordered_uuid"

    def fill(self, buffer: Buffer, now_ns: Optional[int] = None) -> None:
        if now_ns is None:
            now_ns = time.time_ns()
        write_time_ordered(buffer, ticks_since_reform(now_ns))


class TruncatedKeyGenerator:
    """
    Time-ordered keys that went through an incompatible GUID parser.

    The clock runs ``scale`` times faster than wall time from ``start_ns``
    (process start by default), so a few minutes of benchmarking cover
    years of timestamps.
    """

    def __init__(self, start_ns: Optional[int] = None, scale: float = TIME_SCALE) -> None:
        self.start_ns = _PROCESS_START_NS if start_ns is None else start_ns
        self.scale = scale

    def name(self) -> str:
        return "broken_time_ordered_uuid"

    def scaled_now_ns(self, now_ns: Optional[int] = None) -> int:
        if now_ns is None:
            now_ns = time.time_ns()
        return self.start_ns + int((now_ns - self.start_ns) * self.scale)

    def fill(self, buffer: Buffer, now_ns: Optional[int] = None) -> None:
        _check_buffer(buffer)
        ordered = bytearray(KEY_SIZE)
        write_time_ordered(ordered, ticks_since_reform(self.scaled_now_ns(now_ns)))
        buffer[:] = roundtrip_as_guid(ordered)


def generator_for(variant: GeneratorVariant) -> KeyGenerator:
    if variant is GeneratorVariant.RANDOM:
        return RandomKeyGenerator()
    if variant is GeneratorVariant.TIME_ORDERED:
        return TimeOrderedKeyGenerator()
    if variant is GeneratorVariant.TIME_ORDERED_TRUNCATED:
        return TruncatedKeyGenerator()
    raise ValueError(f"Unknown generator variant: {variant}")


def new_key(generator: KeyGenerator, now_ns: Optional[int] = None) -> bytes:
    """Allocate a buffer, fill it, and return the key as bytes."""
    buffer = bytearray(KEY_SIZE)
    generator.fill(buffer, now_ns)
    return bytes(buffer)
