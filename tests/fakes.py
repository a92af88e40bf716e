"""A recording stand-in for ``wgpu.GPUDevice``.

Implements only the calls wavetrace makes.  Submitted dispatches are
logged in issue order and, when a Python kernel is registered for an
entry point, executed against the buffers' host-side bytes.
"""

from __future__ import annotations

from dataclasses import dataclass, field

import numpy as np
import wgpu


@dataclass(eq=False)
class FakeBuffer:
    size: int
    usage: int
    data: bytearray

    def array(self, dtype="<f4", width=4) -> np.ndarray:
        return np.frombuffer(self.data, dtype=dtype).reshape(-1, width)


@dataclass(eq=False)
class FakeShaderModule:
    label: str
    code: object


@dataclass(eq=False)
class FakeBindGroupLayout:
    entries: list


@dataclass(eq=False)
class FakeBindGroup:
    layout: FakeBindGroupLayout
    entries: list

    def buffers(self) -> list[FakeBuffer]:
        return [e["resource"]["buffer"] for e in self.entries]


@dataclass(eq=False)
class FakePipelineLayout:
    bind_group_layouts: list


@dataclass(eq=False)
class FakePipeline:
    label: str
    layout: FakePipelineLayout
    entry_point: str
    module: FakeShaderModule


@dataclass
class Dispatch:
    entry_point: str
    workgroups: tuple
    bind_groups: dict


class FakeComputePass:
    def __init__(self):
        self.commands: list[Dispatch] = []
        self._pipeline = None
        self._bind_groups: dict = {}
        self.ended = False

    def set_pipeline(self, pipeline):
        self._pipeline = pipeline

    def set_bind_group(self, index, bind_group):
        self._bind_groups[index] = bind_group

    def dispatch_workgroups(self, x, y=1, z=1):
        self.commands.append(Dispatch(
            entry_point=self._pipeline.entry_point,
            workgroups=(x, y, z),
            bind_groups=dict(self._bind_groups),
        ))

    def end(self):
        self.ended = True


class FakeCommandEncoder:
    def __init__(self):
        self.passes: list[FakeComputePass] = []

    def begin_compute_pass(self):
        compute_pass = FakeComputePass()
        self.passes.append(compute_pass)
        return compute_pass

    def finish(self):
        return [cmd for p in self.passes for cmd in p.commands]


class FakeQueue:
    def __init__(self, device: FakeDevice):
        self._device = device
        self.submissions = 0

    def submit(self, command_buffers):
        self.submissions += 1
        for commands in command_buffers:
            for dispatch in commands:
                self._device.dispatches.append(dispatch)
                kernel = self._device.kernels.get(dispatch.entry_point)
                if kernel is not None:
                    kernel(dispatch)

    def read_buffer(self, buffer: FakeBuffer):
        self._device.readbacks += 1
        return memoryview(bytes(buffer.data))


@dataclass
class FakeDevice:
    kernels: dict = field(default_factory=dict)
    # entry point -> access types per group, e.g. {"main_raytrace": [["storage", "storage"]]}
    expected_layouts: dict = field(default_factory=dict)
    fail_allocation: bool = False

    def __post_init__(self):
        self.queue = FakeQueue(self)
        self.buffers: list[FakeBuffer] = []
        self.dispatches: list[Dispatch] = []
        self.readbacks = 0

    def create_buffer(self, *, size, usage, label=""):
        if self.fail_allocation:
            raise wgpu.GPUOutOfMemoryError("out of memory")
        buf = FakeBuffer(size=size, usage=usage, data=bytearray(size))
        self.buffers.append(buf)
        return buf

    def create_buffer_with_data(self, *, data, usage, label=""):
        if self.fail_allocation:
            raise wgpu.GPUOutOfMemoryError("out of memory")
        buf = FakeBuffer(size=len(data), usage=usage, data=bytearray(data))
        self.buffers.append(buf)
        return buf

    def create_shader_module(self, *, code, label=""):
        return FakeShaderModule(label=label, code=code)

    def create_bind_group_layout(self, *, entries, label=""):
        return FakeBindGroupLayout(entries=entries)

    def create_bind_group(self, *, layout, entries, label=""):
        return FakeBindGroup(layout=layout, entries=entries)

    def create_pipeline_layout(self, *, bind_group_layouts, label=""):
        return FakePipelineLayout(bind_group_layouts=bind_group_layouts)

    def create_compute_pipeline(self, *, layout, compute, label=""):
        entry_point = compute["entry_point"]
        expected = self.expected_layouts.get(entry_point)
        if expected is not None:
            actual = [
                [entry["buffer"]["type"] for entry in group.entries]
                for group in layout.bind_group_layouts
            ]
            if actual != expected:
                raise wgpu.GPUValidationError(
                    f"layout {actual} incompatible with shader {expected}"
                )
        return FakePipeline(label=label, layout=layout, entry_point=entry_point,
                            module=compute["module"])

    def create_command_encoder(self, label=""):
        return FakeCommandEncoder()


def spirv_blob(words: int = 5) -> bytes:
    """Minimal byte string with a valid SPIR-V header magic."""
    return np.array([0x07230203] + [0] * (words - 1), dtype="<u4").tobytes()
