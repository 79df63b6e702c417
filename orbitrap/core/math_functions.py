"""
Core mathematical functions for fractal iteration.

This module provides the viewport and pixel-to-plane mapping, the
escape-time iteration with orbit-trap tracking, and the containers for
per-pixel results.
"""

import math
import numpy as np
from typing import Optional, Tuple, Iterator
from dataclasses import dataclass
import logging

from .traps import OrbitTrap, PointTrap

logger = logging.getLogger(__name__)

# Recurrence variants understood by every evaluation backend
VARIANT_QUADRATIC = 0
VARIANT_BURNING_SHIP = 1


@dataclass(frozen=True)
class Viewport:
    """Visible region of the complex plane, defined by a center and a scale."""

    center: complex = complex(-0.5, 0.0)
    half_height: float = 1.5

    def __post_init__(self):
        object.__setattr__(self, 'center', complex(self.center))
        object.__setattr__(self, 'half_height', float(self.half_height))

        if not math.isfinite(self.center.real) or not math.isfinite(self.center.imag):
            raise ValueError("Viewport center must be finite")
        if not (self.half_height > 0 and math.isfinite(self.half_height)):
            raise ValueError("Viewport half_height must be positive")

    @classmethod
    def from_bounds(cls, xmin: float, xmax: float, ymin: float, ymax: float) -> 'Viewport':
        """
        Create a viewport from (xmin, xmax, ymin, ymax) plane bounds.

        The imaginary span sets the scale; the real span is implied by the
        raster aspect ratio at render time.
        """
        if xmin >= xmax or ymin >= ymax:
            raise ValueError("Invalid bounds: min values must be less than max values")
        center = complex((xmin + xmax) / 2, (ymin + ymax) / 2)
        return cls(center, (ymax - ymin) / 2)

    @classmethod
    def from_zoom(cls, center: complex, zoom: float,
                  base_half_height: float = 1.5) -> 'Viewport':
        """Create a viewport magnified ``zoom`` times relative to ``base_half_height``."""
        if zoom <= 0:
            raise ValueError("zoom must be positive")
        return cls(center, base_half_height / zoom)

    def zoomed(self, factor: float, center: Optional[complex] = None) -> 'Viewport':
        """Return a viewport magnified by ``factor``, optionally recentered."""
        if factor <= 0:
            raise ValueError("zoom factor must be positive")
        return Viewport(self.center if center is None else center, self.half_height / factor)

    def panned(self, dx: float, dy: float) -> 'Viewport':
        """Return a viewport shifted by ``dx + i*dy``."""
        return Viewport(self.center + complex(dx, dy), self.half_height)

    def half_width(self, dimensions: 'RasterDimensions') -> float:
        """Half of the real-axis span for the given raster."""
        return self.half_height * dimensions.aspect_ratio

    def bounds(self, dimensions: 'RasterDimensions') -> Tuple[float, float, float, float]:
        """Get (xmin, xmax, ymin, ymax) for the given raster."""
        hw = self.half_width(dimensions)
        return (self.center.real - hw, self.center.real + hw,
                self.center.imag - self.half_height, self.center.imag + self.half_height)


@dataclass(frozen=True)
class RasterDimensions:
    """Output raster size in pixels."""

    width: int
    height: int

    def __post_init__(self):
        for name in ('width', 'height'):
            value = getattr(self, name)
            if isinstance(value, bool) or not isinstance(value, (int, np.integer)):
                raise ValueError(f"{name} must be an integer")
            if value <= 0:
                raise ValueError("Width and height must be positive")
            object.__setattr__(self, name, int(value))

    @property
    def aspect_ratio(self) -> float:
        return self.width / self.height

    @property
    def pixel_count(self) -> int:
        return self.width * self.height


class ComplexPlane:
    """Affine mapping between raster pixels and the complex plane."""

    def __init__(self, viewport: Viewport, dimensions: RasterDimensions):
        """
        Initialize the pixel mapping.

        Args:
            viewport: Visible region of the plane
            dimensions: Output raster size

        Both axes share one scale so the image is never distorted:
        ``height`` pixels span ``2 * half_height``.
        """
        self.viewport = viewport
        self.dimensions = dimensions
        self.width = dimensions.width
        self.height = dimensions.height
        self.scale = 2.0 * viewport.half_height / dimensions.height

    def pixel_to_complex(self, col: int, row: int) -> complex:
        """Convert pixel coordinates to complex number. Row 0 is the top edge."""
        center = self.viewport.center

        if self.width == 1:
            real = center.real
        else:
            real = center.real + (col - self.width / 2) * self.scale

        if self.height == 1:
            imag = center.imag
        else:
            imag = center.imag - (row - self.height / 2) * self.scale

        return complex(real, imag)

    def complex_to_pixel(self, c: complex) -> Tuple[int, int]:
        """Convert complex number to the nearest (col, row) pixel coordinates."""
        center = self.viewport.center
        col = 0 if self.width == 1 else int(round((c.real - center.real) / self.scale + self.width / 2))
        row = 0 if self.height == 1 else int(round((center.imag - c.imag) / self.scale + self.height / 2))
        return col, row

    def create_coordinate_arrays(self, rows: Optional[Tuple[int, int]] = None,
                                 cols: Optional[Tuple[int, int]] = None) -> Tuple[np.ndarray, np.ndarray]:
        """
        Create coordinate arrays for the plane or a rectangular part of it.

        Args:
            rows: Optional (start, stop) row range
            cols: Optional (start, stop) column range

        Returns:
            Tuple of (real_coords, imag_coords) 2D arrays
        """
        row_start, row_stop = rows if rows is not None else (0, self.height)
        col_start, col_stop = cols if cols is not None else (0, self.width)
        center = self.viewport.center

        col_idx = np.arange(col_start, col_stop, dtype=np.float64)
        row_idx = np.arange(row_start, row_stop, dtype=np.float64)

        if self.width == 1:
            x = np.full(col_idx.shape, center.real)
        else:
            x = center.real + (col_idx - self.width / 2) * self.scale

        if self.height == 1:
            y = np.full(row_idx.shape, center.imag)
        else:
            y = center.imag - (row_idx - self.height / 2) * self.scale

        return np.meshgrid(x, y)


@dataclass(frozen=True)
class PixelResult:
    """Outcome of iterating a single point."""

    escaped: bool
    iterations: int
    trap_distance: float
    final_magnitude_sq: float = 0.0


class IterationResult:
    """Container for fractal iteration results."""

    def __init__(self, iterations: np.ndarray, escaped: np.ndarray,
                 trap_distance: np.ndarray, final_magnitude_sq: Optional[np.ndarray] = None):
        """
        Initialize iteration result.

        Args:
            iterations: Array of iteration counts
            escaped: Boolean array indicating which points escaped
            trap_distance: Minimum orbit-trap distance per point
            final_magnitude_sq: |z|^2 at the last step (for smooth coloring)
        """
        self.iterations = iterations
        self.escaped = escaped
        self.trap_distance = trap_distance
        if final_magnitude_sq is None:
            final_magnitude_sq = np.zeros(iterations.shape, dtype=np.float64)
        self.final_magnitude_sq = final_magnitude_sq
        self.shape = iterations.shape

    @classmethod
    def from_pixels(cls, pixels) -> 'IterationResult':
        """Build a result from a 2D nested sequence of PixelResult."""
        return cls(
            np.array([[p.iterations for p in row] for row in pixels], dtype=np.int32),
            np.array([[p.escaped for p in row] for row in pixels], dtype=bool),
            np.array([[p.trap_distance for p in row] for row in pixels], dtype=np.float64),
            np.array([[p.final_magnitude_sq for p in row] for row in pixels], dtype=np.float64),
        )

    def pixel(self, row: int, col: int) -> PixelResult:
        """Get the result for one pixel."""
        return PixelResult(
            escaped=bool(self.escaped[row, col]),
            iterations=int(self.iterations[row, col]),
            trap_distance=float(self.trap_distance[row, col]),
            final_magnitude_sq=float(self.final_magnitude_sq[row, col]),
        )

    def get_normalized_iterations(self, max_iter: int) -> np.ndarray:
        """Get continuous iteration counts for smooth coloring."""
        # mu = n + 1 - log2(log|z|), with log|z| = log(|z|^2) / 2
        log_zn = 0.5 * np.log(np.maximum(self.final_magnitude_sq, 1.0 + 1e-12))
        smooth_iter = self.iterations + 1.0 - np.log2(np.maximum(log_zn, 1e-12))
        smooth_iter = np.where(self.escaped, smooth_iter, max_iter)
        return np.clip(smooth_iter, 0, max_iter)


class FractalIterator:
    """Escape-time iteration with orbit-trap distance tracking."""

    def __init__(self, max_iter: int = 1000, escape_radius: float = 2.0,
                 trap: Optional[OrbitTrap] = None, fractal=None):
        """
        Initialize fractal iterator.

        Args:
            max_iter: Maximum number of iterations
            escape_radius: Radius for escape condition
            trap: Orbit trap geometry (point trap at the origin by default)
            fractal: Fractal family supplying z0, c and the recurrence
                variant (Mandelbrot by default)
        """
        if max_iter <= 0:
            raise ValueError("max_iter must be positive")
        if not (escape_radius > 0 and math.isfinite(escape_radius)):
            raise ValueError("escape_radius must be positive and finite")

        if fractal is None:
            from .fractal_types import MandelbrotSet
            fractal = MandelbrotSet()

        self.max_iter = int(max_iter)
        self.escape_radius = float(escape_radius)
        self.escape_radius_sq = self.escape_radius ** 2
        self.trap = trap if trap is not None else PointTrap()
        self.fractal = fractal

    def iterate(self, point: complex) -> PixelResult:
        """
        Iterate a single point.

        Each step computes z_{n+1}, samples the trap distance of z_{n+1},
        then checks |z_{n+1}|^2 against the squared escape radius. The
        reported count is the index n of the escaping step, so the escaping
        sample is part of the trap minimum.

        Args:
            point: Pixel coordinate in the complex plane

        Returns:
            PixelResult for this point
        """
        z0, c = self.fractal.initial_state(point)
        zr, zi = z0.real, z0.imag
        cr, ci = c.real, c.imag
        zr2 = zr * zr
        zi2 = zi * zi
        radius_sq = self.escape_radius_sq
        distance = self.trap.distance
        burning_ship = self.fractal.variant == VARIANT_BURNING_SHIP
        trap_min = math.inf

        for n in range(self.max_iter):
            if burning_ship:
                zi = 2.0 * abs(zr * zi) + ci
            else:
                zi = 2.0 * zr * zi + ci
            zr = zr2 - zi2 + cr
            zr2 = zr * zr
            zi2 = zi * zi

            d = distance(zr, zi)
            if d < trap_min:
                trap_min = d

            if zr2 + zi2 > radius_sq:
                return PixelResult(True, n, trap_min, zr2 + zi2)

        return PixelResult(False, self.max_iter, trap_min, zr2 + zi2)

    def orbit(self, point: complex) -> Iterator[complex]:
        """Yield z_1, z_2, ... up to and including the escaping value."""
        z0, c = self.fractal.initial_state(point)
        zr, zi = z0.real, z0.imag
        zr2 = zr * zr
        zi2 = zi * zi
        burning_ship = self.fractal.variant == VARIANT_BURNING_SHIP

        for _ in range(self.max_iter):
            if burning_ship:
                zi = 2.0 * abs(zr * zi) + c.imag
            else:
                zi = 2.0 * zr * zi + c.imag
            zr = zr2 - zi2 + c.real
            zr2 = zr * zr
            zi2 = zi * zi
            yield complex(zr, zi)
            if zr2 + zi2 > self.escape_radius_sq:
                return

    def trap_history(self, point: complex) -> np.ndarray:
        """Running minimum of the trap distance after every step."""
        distances = [self.trap.distance(z.real, z.imag) for z in self.orbit(point)]
        return np.minimum.accumulate(np.array(distances, dtype=np.float64))

    def iterate_array(self, re: np.ndarray, im: np.ndarray) -> IterationResult:
        """
        Iterate every point of a coordinate grid.

        Only the points that have not escaped yet are carried from one step
        to the next, using the same arithmetic as ``iterate``.

        Args:
            re: Real parts of the pixel coordinates
            im: Imaginary parts of the pixel coordinates

        Returns:
            IterationResult with the same shape as ``re``
        """
        shape = re.shape
        zr, zi, cr, ci = (a.astype(np.float64).ravel() for a in self.fractal.initial_arrays(re, im))
        size = zr.size

        iterations = np.full(size, self.max_iter, dtype=np.int32)
        escaped = np.zeros(size, dtype=bool)
        trap_distance = np.empty(size, dtype=np.float64)
        final_magnitude_sq = np.empty(size, dtype=np.float64)

        index = np.arange(size)
        trap_min = np.full(size, np.inf)
        zr2 = zr * zr
        zi2 = zi * zi
        burning_ship = self.fractal.variant == VARIANT_BURNING_SHIP

        for n in range(self.max_iter):
            if index.size == 0:
                break

            if burning_ship:
                zi = 2.0 * np.abs(zr * zi) + ci
            else:
                zi = 2.0 * zr * zi + ci
            zr = zr2 - zi2 + cr
            zr2 = zr * zr
            zi2 = zi * zi

            trap_min = np.minimum(trap_min, self.trap.distance_array(zr, zi))

            magnitude_sq = zr2 + zi2
            out = magnitude_sq > self.escape_radius_sq
            if np.any(out):
                done = index[out]
                iterations[done] = n
                escaped[done] = True
                trap_distance[done] = trap_min[out]
                final_magnitude_sq[done] = magnitude_sq[out]

                keep = ~out
                index = index[keep]
                zr, zi, cr, ci = zr[keep], zi[keep], cr[keep], ci[keep]
                zr2, zi2, trap_min = zr2[keep], zi2[keep], trap_min[keep]

        trap_distance[index] = trap_min
        final_magnitude_sq[index] = zr2 + zi2

        return IterationResult(
            iterations.reshape(shape),
            escaped.reshape(shape),
            trap_distance.reshape(shape),
            final_magnitude_sq.reshape(shape),
        )
