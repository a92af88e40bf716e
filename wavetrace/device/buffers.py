"""Device buffer set: the shared mutable arrays of the wavefront pipeline.

Every buffer holds exactly one element per pixel and is allocated once per
run.  Stages hold references to the same ``DeviceBuffer`` objects; nothing
is ever copied between stages, so all of them observe the same in-place
mutations.  A buffer's device memory is released by reference counting
once the last stage and the orchestrator drop it.

The host never touches buffer contents except to seed the RNG state before
the first dispatch and to read the output accumulator once at the end.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

import numpy as np
import wgpu

from wavetrace.encoding.records import BVHNode, MaterialData, PerVertexData, TracingConfig
from wavetrace.errors import DeviceError, ReadbackError
from wavetrace.scene import Scene

VEC4 = np.dtype(("<f4", (4,)))
UVEC2 = np.dtype(("<u4", (2,)))

_STORAGE_RW = (
    wgpu.BufferUsage.STORAGE | wgpu.BufferUsage.COPY_SRC | wgpu.BufferUsage.COPY_DST
)


@dataclass(frozen=True, eq=False)
class DeviceBuffer:
    """One device array with a fixed element type and length."""
    name: str
    buffer: wgpu.GPUBuffer
    dtype: np.dtype
    length: int

    @property
    def nbytes(self) -> int:
        return self.length * self.dtype.itemsize


def _create(device, name: str, dtype: np.dtype, length: int,
            data: Optional[bytes] = None, usage=_STORAGE_RW) -> DeviceBuffer:
    size = length * dtype.itemsize
    if size <= 0:
        raise DeviceError(f"cannot allocate empty buffer '{name}'")
    try:
        if data is None:
            # WebGPU zero-initialises new buffers.
            buf = device.create_buffer(size=size, usage=usage)
        else:
            buf = device.create_buffer_with_data(data=data, usage=usage)
    except wgpu.GPUError as exc:
        raise DeviceError(f"allocation of '{name}' ({size} bytes) failed: {exc}") from exc
    return DeviceBuffer(name=name, buffer=buf, dtype=dtype, length=length)


def seed_rng_state(pixel_count: int, rng: np.random.Generator) -> np.ndarray:
    """One random uvec2 per pixel, drawn once for the whole run."""
    return rng.integers(
        0, 0xFFFFFFFF, size=(pixel_count, 2), dtype=np.uint32, endpoint=True,
    )


@dataclass(frozen=True, eq=False)
class DeviceBufferSet:
    device: object
    width: int
    height: int
    ray_origin: DeviceBuffer
    ray_direction: DeviceBuffer
    throughput: DeviceBuffer
    rng_state: DeviceBuffer
    output: DeviceBuffer

    @classmethod
    def allocate(cls, device, width: int, height: int,
                 rng: Optional[np.random.Generator] = None) -> DeviceBufferSet:
        pixel_count = width * height
        if pixel_count <= 0:
            raise DeviceError(f"cannot allocate buffers for a {width}x{height} image")
        if rng is None:
            rng = np.random.default_rng()
        rng_words = seed_rng_state(pixel_count, rng)

        return cls(
            device=device,
            width=width,
            height=height,
            ray_origin=_create(device, "ray_origin", VEC4, pixel_count),
            ray_direction=_create(device, "ray_direction", VEC4, pixel_count),
            throughput=_create(device, "throughput", VEC4, pixel_count),
            rng_state=_create(device, "rng_state", UVEC2, pixel_count,
                              data=rng_words.tobytes()),
            output=_create(device, "output", VEC4, pixel_count),
        )

    @property
    def pixel_count(self) -> int:
        return self.width * self.height

    def get(self, name: str) -> DeviceBuffer:
        buf = getattr(self, name, None)
        if not isinstance(buf, DeviceBuffer):
            raise KeyError(f"no device buffer named '{name}'")
        return buf

    def all(self) -> list[DeviceBuffer]:
        return [self.ray_origin, self.ray_direction, self.throughput,
                self.rng_state, self.output]

    def read_output(self) -> np.ndarray:
        """Blocking readback of the accumulator as a (pixels, 4) float32 array.

        Waits for every previously submitted dispatch that writes it.
        """
        try:
            raw = self.device.queue.read_buffer(self.output.buffer)
        except wgpu.GPUError as exc:
            raise ReadbackError(f"reading back '{self.output.name}' failed: {exc}") from exc
        data = np.frombuffer(raw, dtype="<f4")
        if data.size != self.pixel_count * 4:
            raise ReadbackError(
                f"readback returned {data.size} floats, expected {self.pixel_count * 4}"
            )
        return data.reshape(self.pixel_count, 4).copy()


@dataclass(frozen=True, eq=False)
class SceneBuffers:
    """Scene records uploaded once, read-only for the whole render."""
    tracing: DeviceBuffer
    bvh_nodes: DeviceBuffer
    vertices: DeviceBuffer
    materials: DeviceBuffer

    def get(self, name: str) -> DeviceBuffer:
        buf = getattr(self, name, None)
        if not isinstance(buf, DeviceBuffer):
            raise KeyError(f"no scene buffer named '{name}'")
        return buf


def upload_scene(device, scene: Scene, tracing: TracingConfig) -> SceneBuffers:
    read_only = wgpu.BufferUsage.STORAGE
    return SceneBuffers(
        tracing=_create(device, "tracing", TracingConfig.DTYPE, 1,
                        data=tracing.to_bytes(), usage=wgpu.BufferUsage.UNIFORM),
        bvh_nodes=_create(device, "bvh_nodes", BVHNode.DTYPE, scene.node_count,
                          data=scene.bvh_nodes, usage=read_only),
        vertices=_create(device, "vertices", PerVertexData.DTYPE, scene.vertex_count,
                         data=scene.vertices, usage=read_only),
        materials=_create(device, "materials", MaterialData.DTYPE, scene.material_count,
                          data=scene.materials, usage=read_only),
    )
