"""GPU adapter and device acquisition."""

from __future__ import annotations

import wgpu

from wavetrace.errors import DeviceError


def request_device(power_preference: str = "high-performance") -> wgpu.GPUDevice:
    try:
        adapter = wgpu.gpu.request_adapter_sync(power_preference=power_preference)
    except RuntimeError as exc:
        raise DeviceError(f"adapter request failed: {exc}") from exc
    if adapter is None:
        raise DeviceError("No suitable GPU adapter found")
    try:
        return adapter.request_device_sync()
    except wgpu.GPUError as exc:
        raise DeviceError(f"device request failed: {exc}") from exc

