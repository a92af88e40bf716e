"""Finalization of the accumulated radiance into an 8-bit RGB image."""

from __future__ import annotations

from pathlib import Path

import numpy as np
from PIL import Image


def normalize(accum: np.ndarray, samples: int) -> np.ndarray:
    """Average the accumulator over ``samples`` and drop alpha.

    ``accum`` is the (pixels, 4) readback.  Only the sample count divides
    the sum, whatever the bounce count was.  Returns a flat float32 array
    of ``pixels * 3`` values in row-major RGB order.
    """
    rgb = np.asarray(accum, dtype=np.float32)[:, :3]
    return (rgb / np.float32(samples)).reshape(-1)


def to_rgb8(flat: np.ndarray, width: int, height: int) -> np.ndarray:
    """Scale [0, 1] radiance to 8-bit channels, saturating out-of-range values."""
    scaled = np.asarray(flat, dtype=np.float32).reshape(height, width, 3) * 255.0
    scaled = np.nan_to_num(scaled, nan=0.0, posinf=255.0, neginf=0.0)
    return np.clip(scaled, 0.0, 255.0).astype(np.uint8)


def save_png(pixels: np.ndarray, output_path: Path) -> None:
    """Save an (H, W, 3) uint8 RGB array as a PNG file."""
    output_path = Path(output_path)
    output_path.parent.mkdir(parents=True, exist_ok=True)
    Image.fromarray(pixels).save(str(output_path))
