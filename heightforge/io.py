"""Reference image loading and output serialization."""

from __future__ import annotations

from contextlib import contextmanager
import json
from pathlib import Path
import shutil
import tempfile
from typing import Any, Iterator

import numpy as np
from PIL import Image

from heightforge.config import ConfigError


def load_reference_image(path: str | Path, *, resolution: int | None = None) -> np.ndarray:
    """Read an image as grayscale in [0, 1], indexed ``[x, y]``.

    The origin is the top-left pixel: image columns map to x and image rows
    to y, so y grows downward. This is the PNG row order, not the bottom-left
    origin of texture space. When `resolution` is given the image must be
    exactly ``resolution x resolution`` pixels.
    """

    with Image.open(Path(path)) as image:
        gray = np.asarray(image.convert("L"), dtype=np.float32) / 255.0
    if resolution is not None and gray.shape != (resolution, resolution):
        rows, cols = gray.shape
        raise ConfigError(
            f"reference image {path} is {cols}x{rows}, expected {resolution}x{resolution}"
        )
    return np.ascontiguousarray(gray.T)


def resolve_output_dir(
    out_root: str | Path,
    run_label: str,
    resolution: int,
    *,
    overwrite: bool,
) -> Path:
    """Create and return ``<out_root>/<run_label>/<R>x<R>``.

    A non-empty directory is only reused when `overwrite` is set.
    """

    target = Path(out_root) / run_label / f"{resolution}x{resolution}"
    if target.exists() and any(target.iterdir()) and not overwrite:
        raise FileExistsError(
            f"Output directory already exists and is not empty: {target}. Use --overwrite to replace files."
        )
    target.mkdir(parents=True, exist_ok=True)
    return target


@contextmanager
def staged_output(target: Path) -> Iterator[Path]:
    """Yield a sibling staging directory that replaces `target`'s contents on success.

    If the body raises, `target` is left untouched.
    """

    stage_dir = Path(tempfile.mkdtemp(prefix=".staging-", dir=str(target.parent)))
    try:
        yield stage_dir
        for child in target.iterdir():
            if child.is_symlink() or child.is_file():
                child.unlink()
            elif child.is_dir():
                shutil.rmtree(child)
        for child in stage_dir.iterdir():
            shutil.move(str(child), str(target / child.name))
    finally:
        shutil.rmtree(stage_dir, ignore_errors=True)


def write_height_npy(path: str | Path, height: np.ndarray) -> None:
    np.save(Path(path), np.asarray(height, dtype=np.float32), allow_pickle=False)


def write_grid_png(path: str | Path, grid_xy: np.ndarray) -> None:
    """Save a uint8 or uint16 ``[x, y]`` grid as a grayscale PNG with ``[0, 0]`` at the top-left."""

    if grid_xy.dtype not in (np.uint8, np.uint16):
        raise ValueError(f"expected a uint8 or uint16 grid (got {grid_xy.dtype})")
    Image.fromarray(np.ascontiguousarray(grid_xy.T)).save(Path(path))


def write_json(path: str | Path, payload: dict[str, Any]) -> None:
    text = json.dumps(payload, indent=2, sort_keys=True)
    Path(path).write_text(text + "\n", encoding="utf-8")
