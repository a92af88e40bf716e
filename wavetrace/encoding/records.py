"""Fixed-layout scene records shared with the device kernels.

Each record owns one std430-laid-out numpy element, so its bytes can be
uploaded verbatim.  The only behaviour here is bit layout:

* ``MaterialData.albedo`` is either an RGBA colour or packed atlas
  coordinates, selected by the ``has_albedo_texture`` word (always 0 or 1).
* ``BVHNode`` stores two payloads in the ``w`` lanes of its bounds:
  ``aabb_min.w`` is the triangle count (0 = internal node) and
  ``aabb_max.w`` is the left child index of an internal node or the first
  triangle index of a leaf.  The right child of an internal node is always
  ``left + 1``.  Both payloads are bit-cast, never converted.

Which of the two ``aabb_max.w`` accessors applies is the caller's
responsibility: check ``is_leaf()`` first.  Nothing here validates it.
"""

from __future__ import annotations

from typing import Iterable, Sequence, TypeVar

import numpy as np

from wavetrace.encoding.bitcast import check_u32, u32_view
from wavetrace.encoding.layout import record_dtype

R = TypeVar("R", bound="Record")


class Record:
    """Base for records backed by a single structured numpy element."""

    FIELDS: list[tuple[str, str]] = []
    DTYPE: np.dtype

    __slots__ = ("_raw",)

    def __init_subclass__(cls, **kwargs):
        super().__init_subclass__(**kwargs)
        cls.DTYPE = record_dtype(cls.FIELDS)

    def __init__(self):
        self._raw = np.zeros((), dtype=self.DTYPE)

    @classmethod
    def from_bytes(cls: type[R], data: bytes) -> R:
        if len(data) != cls.DTYPE.itemsize:
            raise ValueError(
                f"{cls.__name__} needs {cls.DTYPE.itemsize} bytes, got {len(data)}"
            )
        record = cls.__new__(cls)
        record._raw = np.frombuffer(bytes(data), dtype=cls.DTYPE).copy().reshape(())
        return record

    def to_bytes(self) -> bytes:
        return self._raw.tobytes()

    def __eq__(self, other):
        if type(other) is not type(self):
            return NotImplemented
        return self.to_bytes() == other.to_bytes()

    def __repr__(self):
        fields = ", ".join(
            f"{name}={self._raw[name].tolist()}"
            for name, _ in self.FIELDS if not name.startswith("_")
        )
        return f"{type(self).__name__}({fields})"


class TracingConfig(Record):
    FIELDS = [
        ("width", "uint"),
        ("height", "uint"),
        ("max_bounces", "uint"),
    ]

    __slots__ = ()

    def __init__(self, width: int = 0, height: int = 0, max_bounces: int = 0):
        super().__init__()
        self._raw["width"] = check_u32(width)
        self._raw["height"] = check_u32(height)
        self._raw["max_bounces"] = check_u32(max_bounces)

    @property
    def width(self) -> int:
        return int(self._raw["width"])

    @property
    def height(self) -> int:
        return int(self._raw["height"])

    @property
    def max_bounces(self) -> int:
        return int(self._raw["max_bounces"])


class MaterialData(Record):
    FIELDS = [
        ("albedo", "vec4"),  # colour, or atlas location when textured
        ("has_albedo_texture", "uint"),
        ("_pad0", "uint"),
        ("_pad1", "uint"),
        ("_pad2", "uint"),
    ]

    __slots__ = ()

    def __init__(self, albedo: Sequence[float] = (0.0, 0.0, 0.0, 0.0),
                 has_albedo_texture: bool = False):
        super().__init__()
        self.albedo = albedo
        self.set_has_albedo_texture(has_albedo_texture)

    @property
    def albedo(self) -> np.ndarray:
        return self._raw["albedo"].copy()

    @albedo.setter
    def albedo(self, value: Sequence[float]) -> None:
        self._raw["albedo"] = np.asarray(value, dtype=np.float32).reshape(4)

    def has_albedo_texture(self) -> bool:
        return int(self._raw["has_albedo_texture"]) != 0

    def set_has_albedo_texture(self, has_albedo_texture: bool) -> None:
        self._raw["has_albedo_texture"] = 1 if has_albedo_texture else 0


class PerVertexData(Record):
    FIELDS = [
        ("vertex", "vec4"),  # xyz position, w reserved
        ("normal", "vec4"),
        ("uv0", "vec2"),
        ("uv1", "vec2"),  # second UV set, e.g. lightmaps
    ]

    __slots__ = ()

    def __init__(self, vertex=(0.0, 0.0, 0.0, 0.0), normal=(0.0, 0.0, 0.0, 0.0),
                 uv0=(0.0, 0.0), uv1=(0.0, 0.0)):
        super().__init__()
        self._raw["vertex"] = np.asarray(vertex, dtype=np.float32).reshape(4)
        self._raw["normal"] = np.asarray(normal, dtype=np.float32).reshape(4)
        self._raw["uv0"] = np.asarray(uv0, dtype=np.float32).reshape(2)
        self._raw["uv1"] = np.asarray(uv1, dtype=np.float32).reshape(2)

    @property
    def vertex(self) -> np.ndarray:
        return self._raw["vertex"].copy()

    @property
    def normal(self) -> np.ndarray:
        return self._raw["normal"].copy()

    @property
    def uv0(self) -> np.ndarray:
        return self._raw["uv0"].copy()

    @property
    def uv1(self) -> np.ndarray:
        return self._raw["uv1"].copy()


class BVHNode(Record):
    FIELDS = [
        ("aabb_min", "vec4"),  # w = triangle count
        ("aabb_max", "vec4"),  # w = left node (internal) or first triangle (leaf)
    ]

    __slots__ = ()

    def __init__(self):
        # Inverted empty box: any min/max fold with real geometry expands it.
        super().__init__()
        self._raw["aabb_min"] = (np.inf, np.inf, np.inf, 0.0)
        self._raw["aabb_max"] = (-np.inf, -np.inf, -np.inf, 0.0)

    def _min_words(self) -> np.ndarray:
        return u32_view(self._raw["aabb_min"])

    def _max_words(self) -> np.ndarray:
        return u32_view(self._raw["aabb_max"])

    # Immutable access

    def triangle_count(self) -> int:
        return int(self._min_words()[3])

    def left_node_index(self) -> int:
        return int(self._max_words()[3])

    def right_node_index(self) -> int:
        return self.left_node_index() + 1

    def first_triangle_index(self) -> int:
        return int(self._max_words()[3])

    def aabb_min(self) -> np.ndarray:
        return self._raw["aabb_min"][:3].copy()

    def aabb_max(self) -> np.ndarray:
        return self._raw["aabb_max"][:3].copy()

    def is_leaf(self) -> bool:
        return self.triangle_count() > 0

    # Mutable access

    def set_triangle_count(self, triangle_count: int) -> None:
        self._min_words()[3] = check_u32(triangle_count)

    def set_left_node_index(self, left_node_index: int) -> None:
        self._max_words()[3] = check_u32(left_node_index)

    def set_first_triangle_index(self, first_triangle_index: int) -> None:
        self._max_words()[3] = check_u32(first_triangle_index)

    def set_aabb_min(self, aabb_min: Sequence[float]) -> None:
        self._raw["aabb_min"][:3] = np.asarray(aabb_min, dtype=np.float32).reshape(3)

    def set_aabb_max(self, aabb_max: Sequence[float]) -> None:
        self._raw["aabb_max"][:3] = np.asarray(aabb_max, dtype=np.float32).reshape(3)


def pack_records(records: Iterable[Record]) -> bytes:
    """Concatenate records into one contiguous upload blob."""
    return b"".join(record.to_bytes() for record in records)


def unpack_records(cls: type[R], data: bytes) -> list[R]:
    """Split an upload blob back into records of type ``cls``."""
    size = cls.DTYPE.itemsize
    if len(data) % size:
        raise ValueError(
            f"{len(data)} bytes is not a whole number of {cls.__name__} records ({size} B)"
        )
    return [cls.from_bytes(data[i:i + size]) for i in range(0, len(data), size)]
