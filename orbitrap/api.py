"""
Main API for fractal rendering.

This module provides the primary ``render`` operation, which drives the
pixel mapping, the escape-time evaluation and the palette mapping over a
whole raster, plus configuration-driven wrappers around it.
"""

import numpy as np
from typing import Optional, Union, Dict, Any, Tuple, List, Callable
from dataclasses import dataclass, field, asdict, fields
from pathlib import Path
import logging
import time

from .core.math_functions import Viewport, RasterDimensions, ComplexPlane, IterationResult
from .core.fractal_types import FractalParameters, FractalRegistry, FractalType
from .core.traps import create_trap
from .rendering.coloring import (ColoringEngine, ColoringAlgorithm, ColorLike, Palette,
                                 PaletteMapper, to_color)
from .rendering.image_output import ImageExporter, OutputRaster, RenderMetadata
from .acceleration.multiprocessing import (BACKENDS, MultiprocessingAccelerator, TileSpec,
                                           compute_tile, create_tile_grid, get_optimal_process_count,
                                           render_tile)

logger = logging.getLogger(__name__)


def _check_inputs(viewport, raster_dimensions, fractal_parameters, backend):
    if not isinstance(viewport, Viewport):
        raise ValueError(f"viewport must be a Viewport, got {type(viewport).__name__}")
    if not isinstance(raster_dimensions, RasterDimensions):
        raise ValueError(f"raster_dimensions must be RasterDimensions, got {type(raster_dimensions).__name__}")
    if not isinstance(fractal_parameters, FractalParameters):
        raise ValueError(f"fractal_parameters must be FractalParameters, got {type(fractal_parameters).__name__}")
    if backend not in BACKENDS:
        raise ValueError(f"Unknown backend '{backend}'. Available: {', '.join(BACKENDS)}")


def render(viewport: Viewport, raster_dimensions: RasterDimensions,
           fractal_parameters: FractalParameters, palette: Palette, *,
           coloring: Optional[ColoringAlgorithm] = None,
           inside_color: Optional[ColorLike] = None,
           backend: str = 'numpy', workers: int = 1, tile_size: int = 256,
           progress_callback: Optional[Callable[[int, int], None]] = None) -> OutputRaster:
    """
    Render a colored raster.

    Every pixel is mapped to the complex plane, iterated and colored once.
    All inputs are checked before any pixel work starts.

    Args:
        viewport: Visible region of the complex plane
        raster_dimensions: Output size in pixels
        fractal_parameters: Iteration bound, escape radius, trap and fractal family
        palette: Color palette
        coloring: Coloring algorithm (orbit trap by default)
        inside_color: Color of points that never escaped (black by default)
        backend: 'python' (per-pixel reference), 'numpy' or 'numba'
        workers: Number of worker processes; tiles are distributed when > 1
        tile_size: Tile edge length in pixels
        progress_callback: Optional function called with (completed_tiles, total_tiles)

    Returns:
        The complete OutputRaster
    """
    _check_inputs(viewport, raster_dimensions, fractal_parameters, backend)
    if workers < 1:
        raise ValueError("workers must be at least 1")
    if tile_size <= 0:
        raise ValueError("tile_size must be positive")

    mapper = PaletteMapper(palette, coloring, inside_color)
    plane = ComplexPlane(viewport, raster_dimensions)

    if workers > 1:
        accelerator = MultiprocessingAccelerator(workers, tile_size)
        pixels = accelerator.render_parallel(plane, fractal_parameters, mapper, backend, progress_callback)
        return OutputRaster(pixels)

    tiles = create_tile_grid(plane.width, plane.height, tile_size)
    pixels = np.zeros((plane.height, plane.width, 3), dtype=np.uint8)

    for completed, tile in enumerate(tiles, start=1):
        result = render_tile(plane, fractal_parameters, mapper, tile, backend)
        pixels[tile.y_start:tile.y_end, tile.x_start:tile.x_end] = result.pixels
        if progress_callback:
            progress_callback(completed, len(tiles))

    return OutputRaster(pixels)


def evaluate(viewport: Viewport, raster_dimensions: RasterDimensions,
             fractal_parameters: FractalParameters, backend: str = 'numpy') -> IterationResult:
    """
    Compute the uncolored per-pixel results of a raster.

    Returns:
        IterationResult of shape (height, width)
    """
    _check_inputs(viewport, raster_dimensions, fractal_parameters, backend)
    plane = ComplexPlane(viewport, raster_dimensions)
    whole = TileSpec(0, 0, plane.width, 0, plane.height)
    return compute_tile(plane, fractal_parameters, whole, backend)


@dataclass
class RenderConfig:
    """Configuration for fractal rendering."""

    # Image parameters
    width: int = 800
    height: int = 600
    center: Tuple[float, float] = (-0.5, 0.0)
    half_height: float = 1.5

    # Fractal parameters
    fractal: str = 'mandelbrot'
    fractal_params: Dict[str, Any] = field(default_factory=dict)
    max_iterations: int = 500
    escape_radius: float = 2.0
    trap: str = 'point'
    trap_params: Dict[str, Any] = field(default_factory=dict)

    # Coloring
    coloring_algorithm: str = 'orbit_trap'
    color_palette: Union[str, Dict[str, Any]] = 'fire'
    falloff: float = 4.0
    iteration_blend: float = 0.0
    inside_color: Optional[Union[str, Tuple[float, float, float]]] = None

    # Performance
    backend: str = 'numpy'
    num_processes: Optional[int] = 1  # None picks a count from the machine
    tile_size: int = 256

    # Output
    jpeg_quality: int = 95
    save_metadata: bool = True
    save_raw_data: bool = False

    def validate(self):
        """Validate configuration parameters and build every derived object once."""
        self.viewport()
        self.dimensions()
        self.fractal_parameters()
        self.coloring()
        self.palette()

        if self.inside_color is not None:
            to_color(self.inside_color)
        if self.backend not in BACKENDS:
            raise ValueError(f"Unknown backend '{self.backend}'. Available: {', '.join(BACKENDS)}")
        if self.num_processes is not None and self.num_processes < 1:
            raise ValueError("num_processes must be at least 1")
        if self.tile_size <= 0:
            raise ValueError("tile_size must be positive")
        if not 1 <= self.jpeg_quality <= 100:
            raise ValueError("jpeg_quality must be between 1 and 100")

    def viewport(self) -> Viewport:
        center = self.center
        if isinstance(center, (list, tuple)):
            if len(center) != 2:
                raise ValueError("center must be (real, imag)")
            center = complex(float(center[0]), float(center[1]))
        return Viewport(center, self.half_height)

    def dimensions(self) -> RasterDimensions:
        return RasterDimensions(self.width, self.height)

    def fractal_type(self) -> FractalType:
        return FractalRegistry.create_fractal(self.fractal, **(self.fractal_params or {}))

    def fractal_parameters(self) -> FractalParameters:
        return FractalParameters(
            max_iterations=self.max_iterations,
            escape_radius=self.escape_radius,
            trap=create_trap(self.trap, **(self.trap_params or {})),
            fractal=self.fractal_type(),
        )

    def palette(self, engine: Optional[ColoringEngine] = None) -> Palette:
        return (engine or ColoringEngine()).resolve_palette(self.color_palette)

    def coloring(self) -> ColoringAlgorithm:
        kwargs = {}
        if self.coloring_algorithm == 'orbit_trap':
            kwargs = {'falloff': self.falloff, 'iteration_blend': self.iteration_blend}
        return ColoringEngine.create_algorithm(self.coloring_algorithm, **kwargs)

    def workers(self) -> int:
        return self.num_processes if self.num_processes is not None else get_optimal_process_count()

    def to_dict(self) -> Dict[str, Any]:
        """Convert to a plain dictionary (tuples become lists)."""
        data = asdict(self)
        center = self.viewport().center
        data['center'] = [center.real, center.imag]
        if isinstance(self.inside_color, tuple):
            data['inside_color'] = list(self.inside_color)
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'RenderConfig':
        """Create configuration from dictionary, rejecting unknown keys."""
        known = {f.name for f in fields(cls)}
        unknown = set(data) - known
        if unknown:
            raise ValueError(f"Unknown configuration parameter(s): {', '.join(sorted(unknown))}")
        return cls(**data)


class FractalRenderer:
    """Renders the fractal described by a RenderConfig."""

    def __init__(self, config: Optional[RenderConfig] = None):
        """
        Initialize fractal renderer.

        Args:
            config: Rendering configuration (uses defaults if None)
        """
        self.config = config or RenderConfig()
        self.config.validate()

        self.coloring_engine = ColoringEngine()
        self.image_exporter = ImageExporter()
        self.palette = self.config.palette(self.coloring_engine)

        logger.info(f"FractalRenderer initialized: {self.config.width}x{self.config.height}, "
                    f"backend={self.config.backend}")

    def compute(self) -> IterationResult:
        """Compute per-pixel results without coloring."""
        return evaluate(self.config.viewport(), self.config.dimensions(),
                        self.config.fractal_parameters(), self.config.backend)

    def render(self, output_path: Optional[Path] = None,
               progress_callback: Optional[Callable[[int, int], None]] = None) -> OutputRaster:
        """
        Render fractal to image.

        Args:
            output_path: Optional output file path
            progress_callback: Optional progress callback function

        Returns:
            Rendered raster
        """
        start_time = time.time()
        config = self.config
        parameters = config.fractal_parameters()
        workers = config.workers()

        logger.info(f"Starting render: {parameters.fractal.name} fractal, "
                    f"{parameters.trap.name} trap, {workers} worker(s)")

        raster = render(
            config.viewport(), config.dimensions(), parameters, self.palette,
            coloring=config.coloring(),
            inside_color=config.inside_color,
            backend=config.backend,
            workers=workers,
            tile_size=config.tile_size,
            progress_callback=progress_callback,
        )

        render_time = time.time() - start_time
        if output_path:
            self._save_image(raster, Path(output_path), render_time, parameters, workers)

        logger.info(f"Render complete: {render_time:.2f}s")
        return raster

    def metadata(self, parameters: FractalParameters, render_time: float, workers: int = 1) -> RenderMetadata:
        """Describe a render for embedding in the output file."""
        from . import __version__

        config = self.config
        center = config.viewport().center
        return RenderMetadata(
            fractal_type=parameters.fractal.name,
            center=(center.real, center.imag),
            half_height=config.half_height,
            resolution=(config.width, config.height),
            max_iterations=parameters.max_iterations,
            escape_radius=parameters.escape_radius,
            trap=parameters.trap.to_dict(),
            coloring_algorithm=config.coloring_algorithm,
            color_palette=self.palette.name,
            backend=config.backend,
            render_time_seconds=render_time,
            workers=workers,
            software_version=__version__,
            fractal_parameters=parameters.fractal.to_dict(),
        )

    def _save_image(self, raster: OutputRaster, output_path: Path, render_time: float,
                    parameters: FractalParameters, workers: int):
        """Save rendered image with metadata."""
        metadata = self.metadata(parameters, render_time, workers)

        if self.config.save_metadata:
            self.image_exporter.save_image(raster, output_path, metadata, self.config.jpeg_quality)
        else:
            self.image_exporter.save_image(raster, output_path, quality=self.config.jpeg_quality)

        if self.config.save_raw_data:
            self.image_exporter.save_raw_data(raster, output_path.with_suffix('.npy'), metadata)


class BatchRenderer:
    """Batch fractal rendering with job queuing."""

    def __init__(self, base_config: Optional[RenderConfig] = None):
        """Initialize batch renderer."""
        self.base_config = base_config or RenderConfig()
        self.jobs = []
        self.results = []

    def add_job(self, output_path: Path, config_overrides: Optional[Dict[str, Any]] = None,
                job_name: Optional[str] = None):
        """
        Add a rendering job to the batch.

        Args:
            output_path: Output file path
            config_overrides: Configuration overrides for this job
            job_name: Optional name for the job
        """
        self.jobs.append({
            'output_path': Path(output_path),
            'config_overrides': config_overrides or {},
            'job_name': job_name or f"job_{len(self.jobs)}",
            'status': 'pending',
        })

    def run_batch(self, progress_callback: Optional[Callable] = None) -> List[Dict[str, Any]]:
        """
        Execute all jobs in the batch.

        A failing job is recorded as failed and the batch continues.

        Args:
            progress_callback: Optional callback called with (done, total, result)

        Returns:
            List of job results
        """
        results = []

        for i, job in enumerate(self.jobs):
            logger.info(f"Processing job {i+1}/{len(self.jobs)}: {job['job_name']}")

            try:
                config = RenderConfig.from_dict({**asdict(self.base_config), **job['config_overrides']})
                renderer = FractalRenderer(config)

                start_time = time.time()
                renderer.render(job['output_path'])
                render_time = time.time() - start_time

                result = {
                    'job_name': job['job_name'],
                    'status': 'completed',
                    'render_time': render_time,
                    'output_path': str(job['output_path']),
                }
                job['status'] = 'completed'

            except (ValueError, OSError) as e:
                logger.error(f"Job {job['job_name']} failed: {e}")
                result = {
                    'job_name': job['job_name'],
                    'status': 'failed',
                    'error': str(e),
                }
                job['status'] = 'failed'

            results.append(result)

            if progress_callback:
                progress_callback(i + 1, len(self.jobs), result)

        self.results = results
        return results

    def get_summary(self) -> Dict[str, Any]:
        """Get batch processing summary."""
        if not self.results:
            return {'status': 'not_run'}

        completed = sum(1 for r in self.results if r['status'] == 'completed')
        failed = sum(1 for r in self.results if r['status'] == 'failed')
        total_time = sum(r.get('render_time', 0) for r in self.results)

        return {
            'total_jobs': len(self.results),
            'completed': completed,
            'failed': failed,
            'success_rate': completed / len(self.results),
            'total_render_time': total_time,
            'average_render_time': total_time / completed if completed > 0 else 0,
        }
