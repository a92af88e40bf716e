"""The three compute stages of the wavefront pipeline.

A stage binds one entry point of the shared kernel module to an ordered
list of device buffers.  Binding ``i`` of group 0 is the ``i``-th buffer of
the stage's layout; the order and access mode must match what the kernel
declares or pipeline creation fails.

Stages that read scene data (``main_raytrace`` and ``main_material``) also
bind group 1 when a scene has been uploaded: the tracing config uniform,
then the BVH nodes, per-vertex data and materials, all read-only.

Dispatch covers ``width // 64`` workgroups horizontally.  A width that is
not a multiple of 64 leaves its rightmost columns undispatched.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import NamedTuple, Optional

import wgpu

from wavetrace.device.buffers import DeviceBuffer, DeviceBufferSet, SceneBuffers
from wavetrace.errors import StageConstructionError
from wavetrace.pipeline.kernel import KernelModule

WORKGROUP_WIDTH = 64

READ_WRITE = "read_write"
READ_ONLY = "read_only"
UNIFORM = "uniform"

_BINDING_TYPES = {
    READ_WRITE: wgpu.BufferBindingType.storage,
    READ_ONLY: wgpu.BufferBindingType.read_only_storage,
    UNIFORM: wgpu.BufferBindingType.uniform,
}


@dataclass(frozen=True)
class Binding:
    buffer: str
    access: str


@dataclass(frozen=True)
class StageLayout:
    entry_point: str
    bindings: tuple[Binding, ...]
    uses_scene: bool = False


RAYGEN = StageLayout("main_raygen", (
    Binding("ray_origin", READ_WRITE),
    Binding("ray_direction", READ_WRITE),
    Binding("throughput", READ_WRITE),
    Binding("rng_state", READ_ONLY),
))

RAYTRACE = StageLayout("main_raytrace", (
    Binding("ray_origin", READ_WRITE),
    Binding("ray_direction", READ_WRITE),
), uses_scene=True)

MATERIAL = StageLayout("main_material", (
    Binding("ray_origin", READ_WRITE),
    Binding("ray_direction", READ_WRITE),
    Binding("throughput", READ_WRITE),
    Binding("rng_state", READ_WRITE),
    Binding("output", READ_WRITE),
), uses_scene=True)

SCENE_BINDINGS = (
    Binding("tracing", UNIFORM),
    Binding("bvh_nodes", READ_ONLY),
    Binding("vertices", READ_ONLY),
    Binding("materials", READ_ONLY),
)


def workgroup_count(width: int, height: int) -> tuple[int, int, int]:
    return (width // WORKGROUP_WIDTH, height, 1)


def covered_columns(width: int) -> int:
    """Columns actually reached by a dispatch of ``workgroup_count``."""
    return (width // WORKGROUP_WIDTH) * WORKGROUP_WIDTH


def _check_against_reflection(kernel: KernelModule, entry_point: str,
                              groups: list[tuple[Binding, ...]]) -> None:
    expected = kernel.expected_bindings(entry_point)
    if expected is None:
        return
    if sorted(expected) != list(range(len(groups))):
        raise StageConstructionError(
            f"{entry_point}: kernel declares groups {sorted(expected)}, "
            f"stage binds {list(range(len(groups)))}"
        )
    for group_index, bindings in enumerate(groups):
        declared = expected[group_index]
        if len(declared) != len(bindings):
            raise StageConstructionError(
                f"{entry_point}: group {group_index} expects {len(declared)} "
                f"bindings, stage binds {len(bindings)}"
            )
        for slot, (decl, binding) in enumerate(zip(declared, bindings)):
            if decl["binding"] != slot:
                raise StageConstructionError(
                    f"{entry_point}: group {group_index} binding numbers must be "
                    f"contiguous from 0, found {decl['binding']} at slot {slot}"
                )
            access = decl.get("access", READ_WRITE)
            if access != binding.access:
                raise StageConstructionError(
                    f"{entry_point}: binding {group_index}.{slot} "
                    f"('{decl.get('name', '?')}') is {access} in the kernel, "
                    f"but '{binding.buffer}' is bound {binding.access}"
                )


def _bind_group(device, group: tuple[Binding, ...], buffers: list[DeviceBuffer]):
    layout = device.create_bind_group_layout(entries=[
        {
            "binding": slot,
            "visibility": wgpu.ShaderStage.COMPUTE,
            "buffer": {"type": _BINDING_TYPES[binding.access]},
        }
        for slot, binding in enumerate(group)
    ])
    bind_group = device.create_bind_group(layout=layout, entries=[
        {
            "binding": slot,
            "resource": {"buffer": buf.buffer, "offset": 0, "size": buf.nbytes},
        }
        for slot, buf in enumerate(buffers)
    ])
    return layout, bind_group


@dataclass(frozen=True, eq=False)
class Stage:
    """Immutable binding of a kernel entry point to shared device buffers."""
    layout: StageLayout
    pipeline: wgpu.GPUComputePipeline
    bind_groups: tuple
    # Held so the buffers outlive every stage that binds them.
    buffers: tuple[DeviceBuffer, ...]

    @property
    def entry_point(self) -> str:
        return self.layout.entry_point

    @classmethod
    def create(
        cls,
        device: wgpu.GPUDevice,
        kernel: KernelModule,
        layout: StageLayout,
        buffers: DeviceBufferSet,
        scene: Optional[SceneBuffers] = None,
    ) -> Stage:
        groups = [layout.bindings]
        resolved = [[buffers.get(b.buffer) for b in layout.bindings]]
        if layout.uses_scene and scene is not None:
            groups.append(SCENE_BINDINGS)
            resolved.append([scene.get(b.buffer) for b in SCENE_BINDINGS])

        _check_against_reflection(kernel, layout.entry_point, groups)

        try:
            group_layouts, bind_groups = [], []
            for group, group_buffers in zip(groups, resolved):
                group_layout, bind_group = _bind_group(device, group, group_buffers)
                group_layouts.append(group_layout)
                bind_groups.append(bind_group)

            pipeline = device.create_compute_pipeline(
                label=layout.entry_point,
                layout=device.create_pipeline_layout(bind_group_layouts=group_layouts),
                compute={"module": kernel.module, "entry_point": layout.entry_point},
            )
        except wgpu.GPUError as exc:
            raise StageConstructionError(
                f"{layout.entry_point}: pipeline creation failed: {exc}"
            ) from exc

        return cls(
            layout=layout,
            pipeline=pipeline,
            bind_groups=tuple(bind_groups),
            buffers=tuple(buf for group in resolved for buf in group),
        )

    def encode(self, compute_pass, workgroups: tuple[int, int, int]) -> None:
        """Record one dispatch of this stage into an open compute pass."""
        compute_pass.set_pipeline(self.pipeline)
        for index, bind_group in enumerate(self.bind_groups):
            compute_pass.set_bind_group(index, bind_group)
        compute_pass.dispatch_workgroups(*workgroups)


class Stages(NamedTuple):
    raygen: Stage
    raytrace: Stage
    material: Stage


def create_stages(
    device: wgpu.GPUDevice,
    kernel: KernelModule,
    buffers: DeviceBufferSet,
    scene: Optional[SceneBuffers] = None,
) -> Stages:
    return Stages(
        raygen=Stage.create(device, kernel, RAYGEN, buffers, scene),
        raytrace=Stage.create(device, kernel, RAYTRACE, buffers, scene),
        material=Stage.create(device, kernel, MATERIAL, buffers, scene),
    )
