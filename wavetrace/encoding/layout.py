"""std430 offsets for the host/device record layouts."""

from __future__ import annotations

import numpy as np

# (size, alignment) in bytes
_STD430 = {
    "scalar": (4, 4),
    "uint": (4, 4),
    "vec2": (8, 8),
    "uvec2": (8, 8),
    "vec3": (12, 16),  # vec3 aligns like vec4
    "vec4": (16, 16),
    "uvec4": (16, 16),
}

_NUMPY_FIELDS = {
    "scalar": ("<f4", ()),
    "uint": ("<u4", ()),
    "vec2": ("<f4", (2,)),
    "uvec2": ("<u4", (2,)),
    "vec3": ("<f4", (3,)),
    "vec4": ("<f4", (4,)),
    "uvec4": ("<u4", (4,)),
}


def std430_size_align(type_name: str) -> tuple[int, int]:
    """Return (size, alignment) in bytes for std430 layout."""
    try:
        return _STD430[type_name]
    except KeyError:
        raise ValueError(f"no std430 layout for type '{type_name}'") from None


def align_up(offset: int, alignment: int) -> int:
    return (offset + alignment - 1) & ~(alignment - 1)


def compute_std430_offsets(fields: list[tuple[str, str]]) -> list[int]:
    """Byte offset of each (name, type) field, in declaration order."""
    offsets = []
    current = 0
    for _, type_name in fields:
        size, align = std430_size_align(type_name)
        current = align_up(current, align)
        offsets.append(current)
        current += size
    return offsets


def record_size(fields: list[tuple[str, str]]) -> int:
    """Struct size rounded up to the 16-byte array stride."""
    if not fields:
        return 0
    offsets = compute_std430_offsets(fields)
    last = offsets[-1] + std430_size_align(fields[-1][1])[0]
    return align_up(last, 16)


def record_dtype(fields: list[tuple[str, str]]) -> np.dtype:
    """numpy dtype with explicit offsets and itemsize matching std430."""
    offsets = compute_std430_offsets(fields)
    names, formats = [], []
    for name, type_name in fields:
        base, shape = _NUMPY_FIELDS[type_name]
        names.append(name)
        formats.append((base, shape) if shape else base)
    return np.dtype({
        "names": names,
        "formats": formats,
        "offsets": offsets,
        "itemsize": record_size(fields),
    })
