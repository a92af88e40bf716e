"""Loading of the shared compute kernel module.

The kernel is an opaque, externally compiled blob exposing three entry
points (``main_raygen``, ``main_raytrace``, ``main_material``).  SPIR-V
binaries are passed to wgpu directly; ``.wgsl`` sources are accepted too.

An optional JSON reflection sidecar (``<kernel>.json``) describes the
binding layout each entry point expects::

    {
      "version": 1,
      "entry_points": {
        "main_raytrace": {
          "descriptor_sets": {
            "0": [
              {"binding": 0, "name": "ray_origin", "access": "read_write"},
              {"binding": 1, "name": "ray_dir", "access": "read_write"}
            ]
          }
        }
      }
    }

When present, stage construction checks its declared bindings against it.
"""

from __future__ import annotations

import json
import struct
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional, Union

import wgpu

from wavetrace.errors import KernelError

SPIRV_MAGIC = 0x07230203

ENTRY_POINTS = ("main_raygen", "main_raytrace", "main_material")


def check_spirv(code: bytes, name: str = "<kernel>") -> None:
    if len(code) < 4:
        raise KernelError(f"{name}: file too small to be valid SPIR-V")
    if len(code) % 4:
        raise KernelError(f"{name}: SPIR-V length {len(code)} is not a multiple of 4")
    magic = struct.unpack("<I", code[:4])[0]
    if magic != SPIRV_MAGIC:
        raise KernelError(
            f"{name}: bad SPIR-V magic 0x{magic:08X} "
            f"(expected 0x{SPIRV_MAGIC:08X})"
        )


def load_reflection(json_path: Path) -> dict:
    try:
        reflection = json.loads(Path(json_path).read_text(encoding="utf-8"))
    except (OSError, ValueError) as exc:
        raise KernelError(f"cannot read kernel reflection {json_path}: {exc}") from exc
    if not isinstance(reflection, dict) or not isinstance(reflection.get("entry_points"), dict):
        raise KernelError(f"{json_path}: reflection has no 'entry_points' table")
    return reflection


@dataclass(frozen=True, eq=False)
class KernelModule:
    """One compiled shader module shared by every pipeline stage."""
    module: wgpu.GPUShaderModule
    name: str
    reflection: Optional[dict] = field(default=None)

    @classmethod
    def from_code(
        cls,
        device: wgpu.GPUDevice,
        code: Union[bytes, str],
        name: str = "<inline>",
        reflection: Optional[dict] = None,
    ) -> KernelModule:
        if isinstance(code, bytes):
            check_spirv(code, name)
        try:
            module = device.create_shader_module(label=name, code=code)
        except Exception as exc:
            msg = str(exc).encode("ascii", errors="replace").decode("ascii")
            raise KernelError(f"{name}: shader module creation failed: {msg}") from exc
        return cls(module=module, name=name, reflection=reflection)

    @classmethod
    def load(
        cls,
        device: wgpu.GPUDevice,
        path: Path,
        reflection_path: Optional[Path] = None,
    ) -> KernelModule:
        """Load ``path`` (.spv or .wgsl) and its reflection sidecar if any."""
        path = Path(path)
        if not path.exists():
            raise KernelError(f"kernel module not found: {path}")

        if path.suffix == ".wgsl":
            code: Union[bytes, str] = path.read_text(encoding="utf-8")
        else:
            code = path.read_bytes()

        if reflection_path is None and path.with_suffix(".json").exists():
            reflection_path = path.with_suffix(".json")
        reflection = load_reflection(reflection_path) if reflection_path else None

        return cls.from_code(device, code, name=path.name, reflection=reflection)

    def expected_bindings(self, entry_point: str) -> Optional[dict[int, list[dict]]]:
        """Reflected bindings for ``entry_point`` keyed by group, or None."""
        if self.reflection is None:
            return None
        entry = self.reflection["entry_points"].get(entry_point)
        if entry is None:
            raise KernelError(f"{self.name}: no entry point '{entry_point}' in reflection")
        sets = entry.get("descriptor_sets", {}) if isinstance(entry, dict) else None
        if not isinstance(sets, dict):
            raise KernelError(
                f"{self.name} reflection: '{entry_point}' has no 'descriptor_sets' table"
            )
        expected = {}
        for group, bindings in sets.items():
            if not isinstance(bindings, list) or not all(
                isinstance(b, dict) and type(b.get("binding")) is int for b in bindings
            ):
                raise KernelError(
                    f"{self.name} reflection: '{entry_point}' group {group} has a binding "
                    f"without an integer 'binding' number"
                )
            try:
                expected[int(group)] = sorted(bindings, key=lambda b: b["binding"])
            except ValueError:
                raise KernelError(
                    f"{self.name} reflection: '{entry_point}' has non-numeric group '{group}'"
                ) from None
        return expected
