"""Rain/erosion/evaporation cellular simulation.

The pipeline owns three full-grid stage buffers and hands them between the
stages of a pluggable kernel. Per iteration:

    evaporation buffer -> rain    -> rain buffer
    rain buffer        -> erode   -> erosion buffer
    erosion buffer     -> evaporate -> evaporation buffer

A stage never reads the buffer it is writing, so every cell of a stage may be
computed in parallel from the previous stage's output.
"""

from __future__ import annotations

from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
import inspect
import logging
import time
from typing import Callable, Protocol

import numpy as np

from heightforge.config import ConfigError, ErosionConfig

logger = logging.getLogger(__name__)

CELL_DTYPE = np.dtype([("height", np.float32), ("water", np.float32)])
STAGES = ("rain", "erode", "evaporate")

# Von Neumann neighbourhood as (dx, dy); index k ^ 1 is the opposite direction.
_NEIGHBOURS = ((-1, 0), (1, 0), (0, -1), (0, 1))


class DependencyError(RuntimeError):
    """Raised when a collaborator the pipeline cannot run without is missing."""


class ErosionKernelUnavailable(DependencyError):
    """Raised when no usable erosion kernel can be resolved."""


class KernelContractError(RuntimeError):
    """Raised when a kernel breaks the stage buffer contract."""


@dataclass(frozen=True)
class ErosionParams:
    """Per-run constants handed to every kernel stage."""

    resolution: int
    rain: float
    solubility: float
    evaporation: float

    @classmethod
    def from_config(cls, resolution: int, config: ErosionConfig) -> "ErosionParams":
        return cls(
            resolution=resolution,
            rain=float(config.rain),
            solubility=float(config.solubility),
            evaporation=float(config.evaporation),
        )


class ErosionKernel(Protocol):
    """Three full-grid transforms over flat `CELL_DTYPE` arrays.

    Each stage is called as ``stage(cells, params)``, reads `cells` only,
    never mutates it, and returns a same-shape array. Stages that also accept
    an ``out`` keyword are handed the destination stage buffer and may write
    the result there and return `out`; `out` never aliases `cells`. Any other
    returned array is copied into the stage buffer.
    """

    def rain(self, cells: np.ndarray, params: ErosionParams) -> np.ndarray:
        ...

    def erode(self, cells: np.ndarray, params: ErosionParams) -> np.ndarray:
        ...

    def evaporate(self, cells: np.ndarray, params: ErosionParams) -> np.ndarray:
        ...


@dataclass(frozen=True)
class ErosionMetrics:
    iterations: int
    stage_invocations: int
    total_water: float
    mean_abs_height_change: float
    elapsed_seconds: float


@dataclass(frozen=True)
class ErosionResult:
    height: np.ndarray
    water: np.ndarray
    metrics: ErosionMetrics


@dataclass(frozen=True)
class StageBuffers:
    """One single-writer buffer per stage."""

    rain: np.ndarray
    erosion: np.ndarray
    evaporation: np.ndarray

    @classmethod
    def allocate(cls, cell_count: int) -> "StageBuffers":
        return cls(
            rain=np.zeros(cell_count, dtype=CELL_DTYPE),
            erosion=np.zeros(cell_count, dtype=CELL_DTYPE),
            evaporation=np.zeros(cell_count, dtype=CELL_DTYPE),
        )


def make_cells(height: np.ndarray) -> np.ndarray:
    """Build a flat cell array from an ``[x, y]`` grid; index is ``x * R + y``."""

    cells = np.zeros(height.size, dtype=CELL_DTYPE)
    cells["height"] = np.asarray(height, dtype=np.float32).ravel()
    return cells


class NumpyErosionKernel:
    """Vectorized kernel; `workers > 1` runs each stage as row bands on a thread pool.

    Dissolved material is carried implicitly as ``solubility * water``: erosion
    dissolves ``solubility * rain`` of height per iteration and evaporation
    deposits ``solubility`` times the evaporated water, so together with the
    pipeline's final deposition the total height is conserved.
    """

    name = "numpy"

    def __init__(self, workers: int = 1, *, band_rows: int | None = None) -> None:
        if workers < 1:
            raise ValueError("workers must be >= 1")
        if band_rows is not None and band_rows < 1:
            raise ValueError("band_rows must be >= 1")
        self.workers = workers
        self.band_rows = band_rows

    def rain(self, cells: np.ndarray, params: ErosionParams, *, out: np.ndarray | None = None) -> np.ndarray:
        return self._run(_rain_rows, cells, params, out)

    def erode(self, cells: np.ndarray, params: ErosionParams, *, out: np.ndarray | None = None) -> np.ndarray:
        return self._run(_erode_rows, cells, params, out)

    def evaporate(self, cells: np.ndarray, params: ErosionParams, *, out: np.ndarray | None = None) -> np.ndarray:
        return self._run(_evaporate_rows, cells, params, out)

    def bands(self, resolution: int) -> list[tuple[int, int]]:
        if self.band_rows is None and self.workers == 1:
            return [(0, resolution)]
        rows = self.band_rows or -(-resolution // self.workers)
        return [(lo, min(lo + rows, resolution)) for lo in range(0, resolution, rows)]

    def _run(
        self,
        rows_fn: Callable[[np.ndarray, np.ndarray, int, int, ErosionParams], None],
        cells: np.ndarray,
        params: ErosionParams,
        out: np.ndarray | None,
    ) -> np.ndarray:
        resolution = params.resolution
        if out is None:
            out = np.empty_like(cells)
        src = cells.reshape(resolution, resolution)
        dst = out.reshape(resolution, resolution)

        bands = self.bands(resolution)
        if len(bands) == 1 or self.workers == 1:
            for lo, hi in bands:
                rows_fn(src, dst, lo, hi, params)
            return out

        with ThreadPoolExecutor(max_workers=self.workers, thread_name_prefix="erosion") as pool:
            futures = [pool.submit(rows_fn, src, dst, lo, hi, params) for lo, hi in bands]
            for future in futures:
                future.result()
        return out


KERNELS: dict[str, type[NumpyErosionKernel]] = {
    NumpyErosionKernel.name: NumpyErosionKernel,
}


def load_kernel(name: str, *, workers: int = 1) -> ErosionKernel:
    """Instantiate a registered kernel by name."""

    try:
        kernel_cls = KERNELS[name]
    except KeyError:
        available = ", ".join(sorted(KERNELS))
        raise ErosionKernelUnavailable(
            f"erosion kernel {name!r} is not available (available: {available})"
        ) from None
    return kernel_cls(workers=workers)


def resolve_kernel(kernel: object | None) -> ErosionKernel:
    """Check that `kernel` exposes all three stage transforms."""

    if kernel is None:
        raise ErosionKernelUnavailable("no erosion kernel supplied")
    missing = [stage for stage in STAGES if not callable(getattr(kernel, stage, None))]
    if missing:
        raise ErosionKernelUnavailable(
            f"erosion kernel {type(kernel).__name__} is missing stage(s): {', '.join(missing)}"
        )
    return kernel  # type: ignore[return-value]


def run_erosion(
    height: np.ndarray,
    params: ErosionParams,
    iterations: int,
    *,
    kernel: ErosionKernel | None,
    check_invariants: bool = False,
) -> ErosionResult:
    """Run `iterations` rain/erode/evaporate rounds over `height`."""

    if iterations < 0:
        raise ConfigError(f"iterations must be >= 0 (got {iterations})")
    stages = resolve_kernel(kernel)
    rain, erode, evaporate = (_bind_stage(getattr(stages, name)) for name in STAGES)

    resolution = params.resolution
    initial = np.asarray(height, dtype=np.float32)
    if initial.shape != (resolution, resolution):
        raise ConfigError(
            f"height field must be {resolution}x{resolution} (got {'x'.join(str(d) for d in initial.shape)})"
        )

    t0 = time.perf_counter()
    buffers = StageBuffers.allocate(resolution * resolution)
    buffers.evaporation["height"] = initial.ravel()

    logger.info(
        "erosion: %d iterations on %dx%d (rain=%g solubility=%g evaporation=%g)",
        iterations,
        resolution,
        resolution,
        params.rain,
        params.solubility,
        params.evaporation,
    )
    for iteration in range(iterations):
        _run_stage(rain, "rain", buffers.evaporation, buffers.rain, params, check_invariants)
        _run_stage(erode, "erode", buffers.rain, buffers.erosion, params, check_invariants)
        _run_stage(evaporate, "evaporate", buffers.erosion, buffers.evaporation, params, check_invariants)
        logger.debug("erosion iteration %d/%d done", iteration + 1, iterations)

    final = buffers.evaporation.reshape(resolution, resolution)
    water = final["water"].copy()
    eroded = (final["height"] + water * np.float32(params.solubility)).astype(np.float32)
    if not np.isfinite(eroded).all():
        raise KernelContractError("erosion produced non-finite heights")

    metrics = ErosionMetrics(
        iterations=iterations,
        stage_invocations=len(STAGES) * iterations,
        total_water=float(water.sum(dtype=np.float64)),
        mean_abs_height_change=float(np.mean(np.abs(eroded.astype(np.float64) - initial))),
        elapsed_seconds=time.perf_counter() - t0,
    )
    return ErosionResult(height=eroded, water=water, metrics=metrics)


StageCall = Callable[[np.ndarray, ErosionParams, np.ndarray], np.ndarray]


def _accepts_out(stage: Callable[..., np.ndarray]) -> bool:
    try:
        parameters = inspect.signature(stage).parameters.values()
    except (TypeError, ValueError):
        return False
    return any(
        (p.name == "out" and p.kind is not p.POSITIONAL_ONLY) or p.kind is p.VAR_KEYWORD
        for p in parameters
    )


def _bind_stage(stage: Callable[..., np.ndarray]) -> StageCall:
    """Adapt a kernel stage to ``call(src, params, dst)``, passing `dst` as ``out`` when accepted."""

    if _accepts_out(stage):
        return lambda src, params, dst: stage(src, params, out=dst)
    return lambda src, params, dst: stage(src, params)


def _run_stage(
    stage: StageCall,
    name: str,
    src: np.ndarray,
    dst: np.ndarray,
    params: ErosionParams,
    check_invariants: bool,
) -> None:
    before = src.copy() if check_invariants else None
    result = stage(src, params, dst)
    if result is not dst:
        result = np.asarray(result)
        if result.shape != dst.shape or result.dtype != CELL_DTYPE:
            raise KernelContractError(
                f"{name} stage returned shape {result.shape} dtype {result.dtype}, "
                f"expected {dst.shape} {CELL_DTYPE}"
            )
        # Returning `src` itself means "unchanged"; any other view of it is aliasing.
        if result is not src and np.shares_memory(result, src):
            raise KernelContractError(f"{name} stage returned a view of its own input buffer")
        np.copyto(dst, result)
    if before is not None:
        if src.tobytes() != before.tobytes():
            raise KernelContractError(f"{name} stage mutated its input buffer")
        _check_stage(name, before, dst)


def _check_stage(name: str, src: np.ndarray, dst: np.ndarray) -> None:
    if np.any(dst["water"] < 0.0):
        raise KernelContractError(f"{name} stage produced negative water")
    if name == "rain":
        if np.any(dst["water"] < src["water"]):
            raise KernelContractError("rain stage decreased water")
        if not np.array_equal(dst["height"], src["height"]):
            raise KernelContractError("rain stage changed height")
    elif name == "evaporate":
        if np.any(dst["water"] > src["water"]):
            raise KernelContractError("evaporate stage increased water")


def _rain_rows(src: np.ndarray, dst: np.ndarray, lo: int, hi: int, params: ErosionParams) -> None:
    dst["height"][lo:hi] = src["height"][lo:hi]
    dst["water"][lo:hi] = src["water"][lo:hi] + np.float32(params.rain)


def _evaporate_rows(src: np.ndarray, dst: np.ndarray, lo: int, hi: int, params: ErosionParams) -> None:
    water = src["water"][lo:hi]
    remaining = water * np.float32(1.0 - params.evaporation)
    dst["water"][lo:hi] = remaining
    dst["height"][lo:hi] = src["height"][lo:hi] + np.float32(params.solubility) * (water - remaining)


def _erode_rows(src: np.ndarray, dst: np.ndarray, lo: int, hi: int, params: ErosionParams) -> None:
    height = src["height"]
    water = src["water"]
    n = height.shape[0]

    slab_lo = max(lo - 1, 0)
    slab_hi = min(hi + 1, n)
    outflow = _water_outflow(height, water, slab_lo, slab_hi)
    inner = slice(lo - slab_lo, hi - slab_lo)

    leaving = outflow[:, inner].sum(axis=0)
    arriving = np.zeros_like(leaving)
    for k, (dx, dy) in enumerate(_NEIGHBOURS):
        arriving += _shift(outflow[k ^ 1], dx, dy, fill=0.0)[inner]

    dst["height"][lo:hi] = height[lo:hi] - np.float32(params.solubility * params.rain)
    dst["water"][lo:hi] = np.maximum(water[lo:hi] - leaving + arriving, 0.0)


def _water_outflow(height: np.ndarray, water: np.ndarray, lo: int, hi: int) -> np.ndarray:
    """Water each cell in rows ``lo:hi`` sends to each neighbour, shape ``(4, hi - lo, n)``.

    A cell sheds enough water to level its surface with the mean of itself and
    its lower neighbours, capped by the water it holds, split in proportion to
    each neighbour's drop. Grid borders are walls.
    """

    n = height.shape[0]
    slab_lo = max(lo - 1, 0)
    slab_hi = min(hi + 1, n)
    surface = height[slab_lo:slab_hi] + water[slab_lo:slab_hi]
    inner = slice(lo - slab_lo, hi - slab_lo)
    centre = surface[inner]

    drops = np.empty((len(_NEIGHBOURS), hi - lo, n), dtype=np.float32)
    for k, (dx, dy) in enumerate(_NEIGHBOURS):
        neighbour = _shift(surface, dx, dy, fill=np.inf)[inner]
        drops[k] = np.maximum(centre - neighbour, 0.0)

    total = drops.sum(axis=0)
    lower = np.count_nonzero(drops > 0.0, axis=0).astype(np.float32)
    moved = np.minimum(water[lo:hi], total / (lower + 1.0))
    share = np.divide(moved, total, out=np.zeros_like(total), where=total > 0.0)
    return (drops * share).astype(np.float32)


def _shift(arr: np.ndarray, dx: int, dy: int, *, fill: float) -> np.ndarray:
    """Return ``out[x, y] = arr[x + dx, y + dy]``, `fill` where that falls outside."""

    out = np.full(arr.shape, fill, dtype=np.float32)
    nx, ny = arr.shape
    dst_x0 = max(0, -dx)
    dst_x1 = min(nx, nx - dx)
    dst_y0 = max(0, -dy)
    dst_y1 = min(ny, ny - dy)
    out[dst_x0:dst_x1, dst_y0:dst_y1] = arr[dst_x0 + dx:dst_x1 + dx, dst_y0 + dy:dst_y1 + dy]
    return out
