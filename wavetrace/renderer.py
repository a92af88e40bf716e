"""Top-level render orchestration.

The renderer allocates the device buffer set once, builds the three stages
once, then issues every dispatch of the run on the device queue:

    for each sample:
        raygen
        for each bounce:
            raytrace
            material

The host never waits on an individual dispatch; the queue orders them.
The only blocking point is the final readback of the output accumulator,
which is averaged over the sample count (not the bounce count), optionally
denoised, and converted to 8-bit RGB.
"""

from __future__ import annotations

import time
from dataclasses import dataclass, field
from pathlib import Path
from typing import Iterator, Optional

import numpy as np

from wavetrace.device.buffers import DeviceBufferSet, upload_scene
from wavetrace.encoding.records import TracingConfig
from wavetrace.errors import ConfigError
from wavetrace.output.denoise import make_denoiser
from wavetrace.output.image import normalize, save_png, to_rgb8
from wavetrace.pipeline.kernel import KernelModule
from wavetrace.pipeline.stages import (
    WORKGROUP_WIDTH, Stage, covered_columns, create_stages, workgroup_count,
)
from wavetrace.scene import Scene, load_scene


@dataclass
class RenderConfig:
    """Run parameters.  Defaults match the reference render."""
    width: int = 1280
    height: int = 720
    samples: int = 128
    bounces: int = 4
    denoise: bool = False
    seed: Optional[int] = None
    output: Path = field(default_factory=lambda: Path("image.png"))

    def validate(self) -> None:
        if self.width < 1 or self.height < 1:
            raise ConfigError(f"image size must be positive, got {self.width}x{self.height}")
        if self.samples < 1:
            raise ConfigError(f"samples must be >= 1, got {self.samples}")
        if self.bounces < 0:
            raise ConfigError(f"bounces must be >= 0, got {self.bounces}")

    @property
    def pixel_count(self) -> int:
        return self.width * self.height

    def tracing_config(self) -> TracingConfig:
        return TracingConfig(self.width, self.height, self.bounces)


class Renderer:
    def __init__(
        self,
        device,
        kernel: KernelModule,
        config: RenderConfig,
        scene: Optional[Scene] = None,
        denoiser=None,
    ):
        config.validate()
        self.device = device
        self.config = config

        if covered_columns(config.width) != config.width:
            print(
                f"[warn] width {config.width} is not a multiple of {WORKGROUP_WIDTH}; "
                f"only {covered_columns(config.width)} columns will be dispatched"
            )

        self.buffers = DeviceBufferSet.allocate(
            device, config.width, config.height,
            rng=np.random.default_rng(config.seed),
        )
        self.scene_buffers = (
            upload_scene(device, scene, config.tracing_config()) if scene is not None else None
        )
        self.stages = create_stages(device, kernel, self.buffers, self.scene_buffers)
        self.denoiser = denoiser if denoiser is not None else make_denoiser(config.denoise)

    @property
    def workgroups(self) -> tuple[int, int, int]:
        return workgroup_count(self.config.width, self.config.height)

    def sample_dispatches(self) -> Iterator[Stage]:
        """Stages of one sample, in issue order."""
        yield self.stages.raygen
        for _ in range(self.config.bounces):
            yield self.stages.raytrace
            yield self.stages.material

    def encode(self) -> int:
        """Submit every dispatch of the run; returns the dispatch count.

        One command buffer per sample, submitted in order on the single
        device queue.
        """
        workgroups = self.workgroups
        issued = 0
        for _ in range(self.config.samples):
            encoder = self.device.create_command_encoder()
            compute_pass = encoder.begin_compute_pass()
            for stage in self.sample_dispatches():
                stage.encode(compute_pass, workgroups)
                issued += 1
            compute_pass.end()
            self.device.queue.submit([encoder.finish()])
        return issued

    def finish(self) -> np.ndarray:
        """Read back, normalize, denoise and convert to (H, W, 3) uint8."""
        width, height = self.config.width, self.config.height
        image = normalize(self.buffers.read_output(), self.config.samples)
        image = self.denoiser(image, width, height)
        return to_rgb8(image, width, height)

    def run(self) -> np.ndarray:
        cfg = self.config
        print(f"Rendering {cfg.width}x{cfg.height}, {cfg.samples} samples, {cfg.bounces} bounces...")
        start = time.perf_counter()
        issued = self.encode()
        elapsed = (time.perf_counter() - start) * 1000.0
        print(f"Issued {issued} dispatches in {elapsed:.0f}ms")
        return self.finish()


def render(
    config: RenderConfig,
    kernel_path: Path,
    scene_path: Optional[Path] = None,
    device=None,
) -> np.ndarray:
    """Load everything, render, and save ``config.output``."""
    config.validate()
    if device is None:
        from wavetrace.device.context import request_device
        device = request_device()

    print(f"Loading kernel '{kernel_path}'...")
    kernel = KernelModule.load(device, kernel_path)
    scene = None
    if scene_path is not None:
        print(f"Loading scene '{scene_path}'...")
        scene = load_scene(scene_path)
        leaves = sum(node.is_leaf() for node in scene.nodes())
        print(f"  {scene.node_count} BVH nodes ({leaves} leaves), {scene.vertex_count} vertices, "
              f"{scene.material_count} materials")

    renderer = Renderer(device, kernel, config, scene=scene)
    pixels = renderer.run()

    save_png(pixels, config.output)
    print(f"Saved {config.width}x{config.height} render to {config.output}")
    return pixels
