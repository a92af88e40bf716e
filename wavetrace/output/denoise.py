"""Denoising strategies applied to the normalized image.

The strategy is chosen once from the render configuration so the
orchestrator always calls the same interface: a flat ``width*height*3``
linear-radiance float array in, an array of the same length out.
"""

from __future__ import annotations

import numpy as np

from wavetrace.errors import DenoiseError


class PassThrough:
    """Denoising disabled: the image is returned unchanged."""

    def __call__(self, image: np.ndarray, width: int, height: int) -> np.ndarray:
        return image


class OidnDenoiser:
    """Intel Open Image Denoise ray-tracing filter (requires ``pyoidn``)."""

    def __init__(self, srgb: bool = True):
        try:
            import pyoidn  # type: ignore[import-untyped]
        except ImportError as exc:
            raise DenoiseError(
                "denoising requires pyoidn (pip install 'wavetrace[denoise]')"
            ) from exc
        self._oidn = pyoidn
        self.srgb = srgb
        self.device = pyoidn.Device(device_type=pyoidn.OIDN_DEVICE_TYPE_CPU)
        self.device.commit()

    def __call__(self, image: np.ndarray, width: int, height: int) -> np.ndarray:
        oidn = self._oidn
        expected = width * height * 3
        if image.size != expected:
            raise DenoiseError(
                f"denoiser input has {image.size} values, expected {expected}"
            )
        color = np.ascontiguousarray(image, dtype=np.float32).reshape(height, width, 3)
        output = np.zeros_like(color)

        filt = oidn.Filter(device=self.device, filter_type=oidn.OIDN_FILTER_TYPE_RT)
        filt.set_image(name=oidn.OIDN_IMAGE_COLOR, data=color,
                       data_format=oidn.OIDN_FORMAT_FLOAT3, width=width, height=height)
        filt.set_image(name=oidn.OIDN_IMAGE_OUTPUT, data=output,
                       data_format=oidn.OIDN_FORMAT_FLOAT3, width=width, height=height)
        filt.set_bool("srgb", self.srgb)
        filt.commit()
        filt.execute()

        error = self.device.get_error()
        if error:
            raise DenoiseError(f"Filter config error: {error}")
        return output.reshape(-1)


def make_denoiser(enabled: bool, srgb: bool = True):
    return OidnDenoiser(srgb=srgb) if enabled else PassThrough()
