"""Read-only scene records produced by an external BVH builder.

The builder is not part of wavetrace.  It hands over three record arrays
(BVH nodes, per-vertex data, materials), either as record objects or as an
``.npz`` dump whose arrays hold the raw 32-bit words of each record.
"""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Sequence

import numpy as np

from wavetrace.encoding.records import (
    BVHNode, MaterialData, PerVertexData, Record, pack_records, unpack_records,
)
from wavetrace.errors import SceneError

_ARRAYS = {
    "bvh_nodes": BVHNode,
    "vertices": PerVertexData,
    "materials": MaterialData,
}


@dataclass(frozen=True)
class Scene:
    """Packed record blobs, ready for upload."""
    bvh_nodes: bytes
    vertices: bytes
    materials: bytes

    @classmethod
    def from_records(
        cls,
        bvh_nodes: Sequence[BVHNode],
        vertices: Sequence[PerVertexData],
        materials: Sequence[MaterialData],
    ) -> Scene:
        return cls(
            bvh_nodes=pack_records(bvh_nodes),
            vertices=pack_records(vertices),
            materials=pack_records(materials),
        )

    @property
    def node_count(self) -> int:
        return len(self.bvh_nodes) // BVHNode.DTYPE.itemsize

    @property
    def vertex_count(self) -> int:
        return len(self.vertices) // PerVertexData.DTYPE.itemsize

    @property
    def material_count(self) -> int:
        return len(self.materials) // MaterialData.DTYPE.itemsize

    def nodes(self) -> list[BVHNode]:
        return unpack_records(BVHNode, self.bvh_nodes)


def _blob(name: str, array: np.ndarray, record: type[Record]) -> bytes:
    if array.dtype.itemsize != 4:
        raise SceneError(
            f"'{name}' must hold 32-bit words, got dtype {array.dtype}"
        )
    data = np.ascontiguousarray(array).astype(array.dtype.newbyteorder("<"), copy=False).tobytes()
    size = record.DTYPE.itemsize
    if not data or len(data) % size:
        raise SceneError(
            f"'{name}' holds {len(data)} bytes; expected a non-empty multiple "
            f"of {size} ({record.__name__})"
        )
    return data


def load_scene(path: Path) -> Scene:
    """Load a builder dump with ``bvh_nodes``, ``vertices`` and ``materials``."""
    path = Path(path)
    if not path.exists():
        raise SceneError(f"scene file not found: {path}")
    try:
        archive = np.load(path, allow_pickle=False)
    except (OSError, ValueError) as exc:
        raise SceneError(f"cannot read scene {path}: {exc}") from exc

    with archive:
        missing = [name for name in _ARRAYS if name not in archive.files]
        if missing:
            raise SceneError(f"{path}: missing arrays {', '.join(missing)}")
        try:
            blobs = {
                name: _blob(name, archive[name], record)
                for name, record in _ARRAYS.items()
            }
        except (OSError, ValueError) as exc:
            raise SceneError(f"cannot read scene arrays from {path}: {exc}") from exc

    return Scene(**blobs)


def save_scene(path: Path, scene: Scene) -> None:
    """Write a scene in the dump format ``load_scene`` reads."""
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    np.savez(
        path,
        bvh_nodes=np.frombuffer(scene.bvh_nodes, dtype="<f4").reshape(-1, 8),
        vertices=np.frombuffer(scene.vertices, dtype="<f4").reshape(-1, 12),
        materials=np.frombuffer(scene.materials, dtype="<u4").reshape(-1, 8),
    )
