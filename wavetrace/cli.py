"""Command-line interface for the wavetrace renderer."""

import argparse
import sys
from pathlib import Path

from wavetrace import __version__
from wavetrace.errors import WavetraceError


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="wavetrace",
        description="Wavefront GPU path tracer: renders a scene with a compiled compute kernel",
    )
    parser.add_argument("kernel", type=Path, help="Compiled kernel module (.spv or .wgsl)")
    parser.add_argument(
        "--scene", type=Path, default=None,
        help="Scene dump (.npz with bvh_nodes, vertices, materials)",
    )
    parser.add_argument("--width", type=int, default=1280, help="Render width (default: 1280)")
    parser.add_argument("--height", type=int, default=720, help="Render height (default: 720)")
    parser.add_argument("--samples", type=int, default=128, help="Samples per pixel (default: 128)")
    parser.add_argument("--bounces", type=int, default=4, help="Bounces per sample (default: 4)")
    parser.add_argument(
        "--denoise", action="store_true",
        help="Run the Open Image Denoise filter on the result (needs pyoidn)",
    )
    parser.add_argument("--seed", type=int, default=None, help="Seed for the per-pixel RNG state")
    parser.add_argument(
        "-o", "--output", type=Path, default=Path("image.png"),
        help="Output PNG path (default: image.png)",
    )
    parser.add_argument("--version", action="version", version=f"wavetrace {__version__}")
    return parser


def main(argv: list[str] | None = None) -> None:
    args = build_parser().parse_args(argv)

    if not args.kernel.exists():
        print(f"Error: kernel not found: {args.kernel}", file=sys.stderr)
        sys.exit(1)

    from wavetrace.renderer import RenderConfig, render

    config = RenderConfig(
        width=args.width,
        height=args.height,
        samples=args.samples,
        bounces=args.bounces,
        denoise=args.denoise,
        seed=args.seed,
        output=args.output,
    )
    try:
        render(config, args.kernel, scene_path=args.scene)
    except WavetraceError as e:
        print(f"Error: {e}", file=sys.stderr)
        sys.exit(1)


if __name__ == "__main__":
    main()
