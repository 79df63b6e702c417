"""
Multiprocessing backend for parallel fractal computation.

This module provides tile-based rendering. The raster is cut into disjoint
rectangular tiles when the work is assigned; every tile is evaluated and
colored on its own and written back into its own slice of the output, so
workers never share a write target.
"""

import numpy as np
from typing import List, Optional, Callable
import multiprocessing as mp
import logging
import time
from dataclasses import dataclass
from concurrent.futures import ProcessPoolExecutor, as_completed

import psutil

from ..core.math_functions import ComplexPlane, IterationResult
from ..core.fractal_types import FractalParameters
from ..rendering.coloring import PaletteMapper
from ..rendering.image_output import to_uint8

logger = logging.getLogger(__name__)

BACKENDS = ('python', 'numpy', 'numba')


@dataclass(frozen=True)
class TileSpec:
    """Specification for a single tile in parallel rendering."""
    tile_id: int
    x_start: int
    x_end: int
    y_start: int
    y_end: int

    @property
    def width(self) -> int:
        return self.x_end - self.x_start

    @property
    def height(self) -> int:
        return self.y_end - self.y_start


@dataclass
class TileResult:
    """Result from processing a single tile."""
    tile: TileSpec
    pixels: np.ndarray
    processing_time: float


def create_tile_grid(width: int, height: int, tile_size: int = 256) -> List[TileSpec]:
    """
    Create a grid of tiles for parallel processing.

    Args:
        width: Total image width
        height: Total image height
        tile_size: Target tile size (pixels)

    Returns:
        List of TileSpec objects covering every pixel exactly once
    """
    if tile_size <= 0:
        raise ValueError("tile_size must be positive")

    tiles = []
    tile_id = 0

    for y in range(0, height, tile_size):
        for x in range(0, width, tile_size):
            tiles.append(TileSpec(
                tile_id=tile_id,
                x_start=x,
                x_end=min(x + tile_size, width),
                y_start=y,
                y_end=min(y + tile_size, height),
            ))
            tile_id += 1

    logger.debug(f"Created {len(tiles)} tiles of target size {tile_size}x{tile_size}")
    return tiles


def compute_tile(plane: ComplexPlane, parameters: FractalParameters,
                 tile: TileSpec, backend: str = 'numpy') -> IterationResult:
    """
    Evaluate every pixel of a tile.

    Args:
        plane: Pixel-to-plane mapping of the whole raster
        parameters: Fractal parameters
        tile: Tile to evaluate
        backend: 'python', 'numpy' or 'numba'

    Returns:
        IterationResult of shape (tile.height, tile.width)
    """
    iterator = parameters.iterator()

    if backend == 'python':
        return IterationResult.from_pixels([
            [iterator.iterate(plane.pixel_to_complex(col, row))
             for col in range(tile.x_start, tile.x_end)]
            for row in range(tile.y_start, tile.y_end)
        ])

    re, im = plane.create_coordinate_arrays((tile.y_start, tile.y_end), (tile.x_start, tile.x_end))

    if backend == 'numpy':
        return iterator.iterate_array(re, im)
    if backend == 'numba':
        from .numba_backend import get_numba_accelerator
        return get_numba_accelerator().iterate_array(iterator, re, im)

    raise ValueError(f"Unknown backend '{backend}'. Available: {', '.join(BACKENDS)}")


def render_tile(plane: ComplexPlane, parameters: FractalParameters, mapper: PaletteMapper,
                tile: TileSpec, backend: str = 'numpy') -> TileResult:
    """
    Evaluate and color a single tile.

    The python backend runs the literal per-pixel pipeline
    (transform, iterate, map) for every pixel of the tile.

    Returns:
        TileResult with an (h, w, 3) uint8 pixel block
    """
    start_time = time.time()
    max_iter = parameters.max_iterations

    if backend == 'python':
        iterator = parameters.iterator()
        rgb = np.empty((tile.height, tile.width, 3), dtype=np.float64)
        for row in range(tile.y_start, tile.y_end):
            for col in range(tile.x_start, tile.x_end):
                pixel = iterator.iterate(plane.pixel_to_complex(col, row))
                rgb[row - tile.y_start, col - tile.x_start] = mapper.map_pixel(pixel, max_iter)
    else:
        result = compute_tile(plane, parameters, tile, backend)
        rgb = mapper.map_array(result, max_iter)

    return TileResult(tile, to_uint8(rgb), time.time() - start_time)


def _render_tile_job(args):
    """Entry point executed in worker processes."""
    return render_tile(*args)


class MultiprocessingAccelerator:
    """Multiprocessing-based parallel fractal computation."""

    def __init__(self, num_processes: Optional[int] = None, tile_size: int = 256):
        """
        Initialize multiprocessing accelerator.

        Args:
            num_processes: Number of worker processes (None for CPU count)
            tile_size: Size of tiles for parallel processing
        """
        if num_processes is None:
            self.num_processes = mp.cpu_count()
        else:
            self.num_processes = max(1, num_processes)

        self.tile_size = tile_size
        logger.debug(f"Multiprocessing accelerator: {self.num_processes} processes, "
                     f"{tile_size}x{tile_size} tiles")

    def render_parallel(self, plane: ComplexPlane, parameters: FractalParameters,
                        mapper: PaletteMapper, backend: str = 'numpy',
                        progress_callback: Optional[Callable[[int, int], None]] = None) -> np.ndarray:
        """
        Render a raster using parallel tile-based processing.

        Args:
            plane: Pixel-to-plane mapping of the whole raster
            parameters: Fractal parameters
            mapper: Palette mapper
            backend: Per-tile evaluation backend
            progress_callback: Optional function called with (completed_tiles, total_tiles)

        Returns:
            (height, width, 3) uint8 pixel array

        Raises:
            Any exception raised by a worker; no partial raster is returned.
        """
        start_time = time.time()
        tiles = create_tile_grid(plane.width, plane.height, self.tile_size)
        pixels = np.zeros((plane.height, plane.width, 3), dtype=np.uint8)

        logger.info(f"Processing {len(tiles)} tiles with {self.num_processes} processes")

        total_processing_time = 0.0
        with ProcessPoolExecutor(max_workers=self.num_processes) as executor:
            futures = [executor.submit(_render_tile_job, (plane, parameters, mapper, tile, backend))
                       for tile in tiles]

            for completed, future in enumerate(as_completed(futures), start=1):
                result = future.result()
                tile = result.tile
                pixels[tile.y_start:tile.y_end, tile.x_start:tile.x_end] = result.pixels
                total_processing_time += result.processing_time

                if progress_callback:
                    progress_callback(completed, len(tiles))

        total_time = time.time() - start_time
        logger.info(f"Parallel rendering complete: {total_time:.2f}s total, "
                    f"{total_processing_time:.2f}s processing time")

        return pixels


def get_optimal_process_count() -> int:
    """Get optimal number of processes for fractal computation."""
    cpu_count = mp.cpu_count()

    # Leave one core for system
    optimal = max(1, cpu_count - 1)

    # Rough estimate: 1 process per 2GB available memory
    available_gb = psutil.virtual_memory().available / (1024 ** 3)
    memory_limited = max(1, int(available_gb / 2))

    return min(optimal, memory_limited)
