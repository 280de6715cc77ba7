"""CLI entry point for height field generation."""

from __future__ import annotations

import argparse
from datetime import datetime, timezone
import logging
from pathlib import Path
import platform
import sys
import time
from typing import Any

import numpy as np
from heightforge.config import (
    DEFAULT_RESOLUTION,
    RESOLUTIONS,
    ConfigError,
    ErosionConfig,
    GeneratorConfig,
    NoiseConfig,
    OffsetConfig,
    RenderConfig,
    validate_config,
)
from heightforge.derive import height_preview_u16, hillshade
from heightforge.erosion import KERNELS, DependencyError
from heightforge.heightfield import GenerationResult, generate
from heightforge.io import (
    load_reference_image,
    resolve_output_dir,
    staged_output,
    write_grid_png,
    write_height_npy,
    write_json,
)
from heightforge.metrics import summarize_height


def build_parser() -> argparse.ArgumentParser:
    noise = NoiseConfig()
    offsets = OffsetConfig()
    erosion = ErosionConfig()
    render = RenderConfig()

    parser = argparse.ArgumentParser(description="Fractal noise height field generator with hydraulic erosion")
    parser.add_argument("--out", default="out", help="Output root directory")
    parser.add_argument("--overwrite", action="store_true", help="Overwrite files in existing output directory")
    parser.add_argument(
        "--json",
        action=argparse.BooleanOptionalAction,
        default=True,
        help="Write metadata JSON files",
    )
    parser.add_argument("--verbose", "-v", action="store_true", help="Log pipeline progress to stderr")

    terrain = parser.add_argument_group("terrain")
    terrain.add_argument(
        "--resolution",
        type=int,
        choices=RESOLUTIONS,
        default=DEFAULT_RESOLUTION,
        help="Height field resolution (cells per side)",
    )
    terrain.add_argument("--terrain-width", type=float, default=render.terrain_width, help="Terrain width in world units")
    terrain.add_argument(
        "--terrain-length", type=float, default=render.terrain_length, help="Terrain length in world units"
    )
    terrain.add_argument("--max-height", type=float, default=render.max_height, help="Height of a 1.0 sample")
    terrain.add_argument("--reference", type=Path, help="Grayscale reference image blended 50/50 into the noise")

    detail = parser.add_argument_group("noise")
    detail.add_argument("--offset-x", type=float, default=noise.global_offset[0], help="Global x offset")
    detail.add_argument("--offset-y", type=float, default=noise.global_offset[1], help="Global y offset")
    detail.add_argument("--scale", type=float, default=noise.scale, help="Noise scale")
    detail.add_argument("--octaves", type=int, default=noise.octave_count, help="Number of noise octaves")
    detail.add_argument("--amplitude", type=float, default=noise.starting_amplitude, help="Starting amplitude")
    detail.add_argument("--frequency", type=float, default=noise.starting_frequency, help="Starting frequency")
    detail.add_argument("--persistence", type=float, default=noise.persistence, help="Amplitude decay per octave")
    detail.add_argument("--lacunarity", type=float, default=noise.lacunarity, help="Frequency growth per octave")
    detail.add_argument("--flatness", type=float, default=noise.flatness, help="Redistribution exponent (>= 1)")

    random_offsets = parser.add_argument_group("random octave offsets")
    random_offsets.add_argument(
        "--random-offsets",
        action=argparse.BooleanOptionalAction,
        default=offsets.enabled,
        help="Shift every octave by a seeded random offset",
    )
    random_offsets.add_argument("--seed", type=int, default=offsets.seed, help="Offset generator seed")
    random_offsets.add_argument("--offset-min", type=int, default=offsets.offset_min, help="Smallest offset (inclusive)")
    random_offsets.add_argument("--offset-max", type=int, default=offsets.offset_max, help="Largest offset (exclusive)")

    sim = parser.add_argument_group("erosion")
    sim.add_argument(
        "--erosion",
        action=argparse.BooleanOptionalAction,
        default=erosion.enabled,
        help="Apply the rain/erosion/evaporation simulation",
    )
    sim.add_argument("--iterations", type=int, default=erosion.iterations, help="Erosion iterations")
    sim.add_argument("--rain", type=float, default=erosion.rain, help="Rain per iteration")
    sim.add_argument("--solubility", type=float, default=erosion.solubility, help="Soil solubility")
    sim.add_argument("--evaporation", type=float, default=erosion.evaporation, help="Evaporation rate in [0, 1]")
    sim.add_argument("--kernel", default=erosion.kernel, help=f"Erosion kernel ({', '.join(sorted(KERNELS))})")
    sim.add_argument("--workers", type=int, default=erosion.workers, help="Threads per erosion stage")
    sim.add_argument(
        "--check-invariants",
        action="store_true",
        help="Verify the kernel's water bounds after every stage",
    )
    return parser


def config_from_args(args: argparse.Namespace) -> GeneratorConfig:
    return GeneratorConfig(
        resolution=args.resolution,
        use_reference_image=args.reference is not None,
        noise=NoiseConfig(
            octave_count=args.octaves,
            starting_amplitude=args.amplitude,
            starting_frequency=args.frequency,
            persistence=args.persistence,
            lacunarity=args.lacunarity,
            flatness=args.flatness,
            scale=args.scale,
            global_offset=(args.offset_x, args.offset_y),
        ),
        offsets=OffsetConfig(
            enabled=args.random_offsets,
            seed=args.seed,
            offset_min=args.offset_min,
            offset_max=args.offset_max,
        ),
        erosion=ErosionConfig(
            enabled=args.erosion,
            iterations=args.iterations,
            rain=args.rain,
            solubility=args.solubility,
            evaporation=args.evaporation,
            kernel=args.kernel,
            workers=args.workers,
            check_invariants=args.check_invariants,
        ),
        render=RenderConfig(
            terrain_width=args.terrain_width,
            terrain_length=args.terrain_length,
            max_height=args.max_height,
        ),
    )


def _deterministic_meta(
    config: GeneratorConfig,
    result: GenerationResult,
    reference_path: Path | None,
) -> dict[str, Any]:
    payload: dict[str, Any] = {
        "resolution": config.resolution,
        "config": config.to_dict(),
        "reference_image": str(reference_path) if reference_path is not None else None,
        "octave_offsets": result.octave_offsets.tolist(),
        "noise": {
            "raw_min": result.noise.raw_min,
            "raw_max": result.noise.raw_max,
            "normalized": result.noise.normalized,
            "blended": result.noise.blended,
            "metrics": summarize_height(result.noise_height.values).to_dict(),
        },
        "metrics": summarize_height(result.height.values).to_dict(),
    }
    if result.erosion is not None:
        erosion = result.erosion.metrics
        payload["erosion"] = {
            "iterations": erosion.iterations,
            "stage_invocations": erosion.stage_invocations,
            "total_water": erosion.total_water,
            "mean_abs_height_change": erosion.mean_abs_height_change,
        }
    return payload


def main(argv: list[str] | None = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    if args.verbose:
        logging.basicConfig(level=logging.DEBUG, format="%(levelname)s %(name)s: %(message)s")

    config = config_from_args(args)
    reference = None
    try:
        validate_config(config)
        if args.reference is not None:
            reference = load_reference_image(args.reference, resolution=config.resolution)
    except (ConfigError, OSError) as exc:
        parser.error(str(exc))

    generation_start = time.perf_counter()
    try:
        result = generate(config, reference=reference)
    except ConfigError as exc:
        parser.error(str(exc))
    except DependencyError as exc:
        print(f"error: {exc}", file=sys.stderr)
        return 3
    generation_seconds = time.perf_counter() - generation_start

    height = result.height.values
    resolution = config.resolution
    shade = hillshade(
        height,
        cell_size_x=config.render.terrain_width / (resolution - 1),
        cell_size_y=config.render.terrain_length / (resolution - 1),
        max_height=config.render.max_height,
        azimuth_deg=config.render.hillshade_azimuth_deg,
        altitude_deg=config.render.hillshade_altitude_deg,
    )

    run_label = f"seed-{config.offsets.seed}" if config.offsets.enabled else "no-offsets"
    out_dir = resolve_output_dir(args.out, run_label, resolution, overwrite=args.overwrite)

    with staged_output(out_dir) as stage_dir:
        write_height_npy(stage_dir / "height.npy", height)
        write_height_npy(stage_dir / "height_noise.npy", result.noise_height.values)
        write_grid_png(stage_dir / "height_16.png", height_preview_u16(height))
        write_grid_png(stage_dir / "hillshade.png", shade)
        if args.json:
            deterministic_meta = _deterministic_meta(config, result, args.reference)
            meta = {
                **deterministic_meta,
                "generated_at_utc": datetime.now(timezone.utc).isoformat(),
                "generation_seconds": generation_seconds,
                "erosion_seconds": result.erosion.metrics.elapsed_seconds if result.erosion is not None else 0.0,
                "python_version": platform.python_version(),
                "numpy_version": np.__version__,
            }
            write_json(stage_dir / "deterministic_meta.json", deterministic_meta)
            write_json(stage_dir / "meta.json", meta)

    metrics = summarize_height(height)
    print(f"Generated height field: {out_dir}")
    print(
        "Height: "
        f"min={metrics.min_height:.4f}, "
        f"max={metrics.max_height:.4f}, "
        f"mean={metrics.mean_height:.4f}, "
        f"hypsometric integral={metrics.hypsometric_integral:.3f}"
    )
    if result.erosion is not None:
        print(
            "Erosion: "
            f"iterations={result.erosion.metrics.iterations}, "
            f"mean |dh|={result.erosion.metrics.mean_abs_height_change:.5f}, "
            f"residual water={result.erosion.metrics.total_water:.3f}, "
            f"runtime={result.erosion.metrics.elapsed_seconds:.3f}s"
        )
    print(f"Generation time: {generation_seconds:.3f} s ({resolution}x{resolution})")
    file_count = sum(1 for child in out_dir.iterdir() if child.is_file())
    print(f"Output files: {file_count}")
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
