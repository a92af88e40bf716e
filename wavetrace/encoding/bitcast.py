"""Explicit bit reinterpretation between float32 lanes and uint32 payloads.

The device records hide integer payloads inside the unused ``w`` lane of
float vectors.  Reading or writing those payloads must copy the raw bit
pattern: a numeric cast (``float(index)`` or ``int(lane)``) corrupts the
value, and a round trip through a Python ``float`` can quiet signalling
NaN patterns.  All reinterpretation therefore goes through numpy views of
the same memory.

Safety contract: both sides are exactly four bytes wide; no function here
ever converts a value numerically.
"""

from __future__ import annotations

import numpy as np

U32_MAX = 0xFFFFFFFF

_F32 = np.dtype("<f4")
_U32 = np.dtype("<u4")


def u32_view(lanes: np.ndarray) -> np.ndarray:
    """Return a uint32 view sharing memory with a float32 array."""
    if lanes.dtype != _F32:
        raise ValueError(f"expected little-endian float32 lanes, got {lanes.dtype}")
    return lanes.view(_U32)


def f32_view(words: np.ndarray) -> np.ndarray:
    """Return a float32 view sharing memory with a uint32 array."""
    if words.dtype != _U32:
        raise ValueError(f"expected little-endian uint32 words, got {words.dtype}")
    return words.view(_F32)


def check_u32(value: int) -> int:
    value = int(value)
    if not 0 <= value <= U32_MAX:
        raise ValueError(f"{value} does not fit in an unsigned 32-bit payload")
    return value


def bits_of_f32(lane: np.floating) -> int:
    """Bit pattern of a single float32 lane as a Python int."""
    return int(np.array(lane, dtype=_F32).view(_U32))


def f32_from_bits(word: int) -> np.float32:
    """float32 scalar whose storage is exactly ``word``."""
    return np.array(check_u32(word), dtype=_U32).view(_F32)[()]
