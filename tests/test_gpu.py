"""End-to-end tests on a real wgpu device with a small WGSL kernel.

Skipped when no GPU adapter is available.
"""

import numpy as np
import pytest

from wavetrace.device.context import request_device
from wavetrace.errors import DeviceError
from wavetrace.pipeline.kernel import KernelModule
from wavetrace.renderer import RenderConfig, Renderer


def _has_adapter():
    try:
        request_device()
        return True
    except DeviceError:
        return False


requires_gpu = pytest.mark.skipif(not _has_adapter(), reason="no wgpu adapter available")

# raygen starts every path with throughput 0.25; each material dispatch
# adds the throughput to the output and halves it.
KERNEL_WGSL = """
@group(0) @binding(0) var<storage, read_write> ray_origin: array<vec4<f32>>;
@group(0) @binding(1) var<storage, read_write> ray_dir: array<vec4<f32>>;
@group(0) @binding(2) var<storage, read_write> throughput: array<vec4<f32>>;
@group(0) @binding(3) var<storage, read_write> rng: array<vec2<u32>>;
@group(0) @binding(4) var<storage, read_write> output: array<vec4<f32>>;

fn pixel(id: vec3<u32>, groups: vec3<u32>) -> u32 {
    return id.y * groups.x * 64u + id.x;
}

@compute @workgroup_size(64, 1, 1)
fn main_raygen(@builtin(global_invocation_id) id: vec3<u32>,
               @builtin(num_workgroups) groups: vec3<u32>) {
    let i = pixel(id, groups);
    ray_origin[i] = vec4<f32>(0.0);
    ray_dir[i] = vec4<f32>(0.0, 0.0, -1.0, 0.0);
    throughput[i] = vec4<f32>(0.25);
}

@compute @workgroup_size(64, 1, 1)
fn main_raytrace(@builtin(global_invocation_id) id: vec3<u32>,
                 @builtin(num_workgroups) groups: vec3<u32>) {
    let i = pixel(id, groups);
    ray_origin[i] = ray_origin[i] + ray_dir[i];
}

@compute @workgroup_size(64, 1, 1)
fn main_material(@builtin(global_invocation_id) id: vec3<u32>,
                 @builtin(num_workgroups) groups: vec3<u32>) {
    let i = pixel(id, groups);
    output[i] = output[i] + throughput[i];
    throughput[i] = throughput[i] * 0.5;
    rng[i] = rng[i] + vec2<u32>(1u, 1u);
}
"""


@pytest.fixture(scope="module")
def gpu():
    return request_device()


def _renderer(gpu, **params):
    kernel = KernelModule.from_code(gpu, KERNEL_WGSL, name="test.wgsl")
    return Renderer(gpu, kernel, RenderConfig(seed=1, **params))


@requires_gpu
class TestGpuRender:
    def test_zero_bounces_contributes_nothing(self, gpu):
        renderer = _renderer(gpu, width=64, height=1, samples=1, bounces=0)
        renderer.encode()
        assert not renderer.buffers.read_output().any()

    def test_accumulates_across_samples_and_bounces(self, gpu):
        renderer = _renderer(gpu, width=64, height=2, samples=2, bounces=2)
        renderer.encode()
        accum = renderer.buffers.read_output()
        # (0.25 + 0.125) per sample, two samples
        assert np.allclose(accum, 0.75)
        assert np.all(renderer.finish() == int(0.375 * 255))

    def test_partial_width_leaves_columns_untouched(self, gpu):
        renderer = _renderer(gpu, width=100, height=1, samples=1, bounces=1)
        renderer.encode()
        accum = renderer.buffers.read_output()
        assert np.allclose(accum[:64], 0.25)
        assert not accum[64:].any()
