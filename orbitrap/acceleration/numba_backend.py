"""
Numba JIT compilation backend for high-performance fractal computation.

This module provides a JIT-compiled version of the escape-time iteration
with orbit-trap tracking. The kernel performs exactly the same arithmetic
as ``FractalIterator.iterate`` so both produce the same results.
"""

import math
import numpy as np
import logging

import numba
from numba import jit, prange

from ..core.math_functions import IterationResult, FractalIterator, VARIANT_BURNING_SHIP
from ..core.traps import TRAP_POINT, TRAP_CIRCLE, TRAP_LINE

logger = logging.getLogger(__name__)


@jit(nopython=True)
def trap_distance(kind, params, zr, zi):
    """Distance from (zr, zi) to the trap described by ``kind`` and ``params``."""
    if kind == TRAP_POINT:
        dx = zr - params[0]
        dy = zi - params[1]
        return math.sqrt(dx * dx + dy * dy)
    elif kind == TRAP_CIRCLE:
        dx = zr - params[0]
        dy = zi - params[1]
        return abs(math.sqrt(dx * dx + dy * dy) - params[2])
    elif kind == TRAP_LINE:
        return abs(params[0] * zr + params[1] * zi + params[2])
    else:
        return min(abs(zr - params[0]), abs(zi - params[1]))


@jit(nopython=True, parallel=True)
def escape_time_kernel(z_real, z_imag, c_real, c_imag, max_iter, escape_radius_sq,
                       variant, trap_kind, trap_params):
    """
    JIT-compiled escape-time kernel with orbit-trap tracking.

    Args:
        z_real, z_imag: Starting values
        c_real, c_imag: Recurrence parameters
        max_iter: Maximum iterations
        escape_radius_sq: Squared escape radius
        variant: Recurrence variant (quadratic or Burning Ship)
        trap_kind, trap_params: Trap description from ``OrbitTrap.kernel_args``

    Returns:
        Tuple of (iterations, escaped, trap_distance, final_magnitude_sq)
    """
    height, width = z_real.shape
    iterations = np.full((height, width), max_iter, dtype=np.int32)
    escaped = np.zeros((height, width), dtype=np.bool_)
    trap_min = np.empty((height, width), dtype=np.float64)
    final_mag = np.empty((height, width), dtype=np.float64)
    burning_ship = variant == VARIANT_BURNING_SHIP

    for i in prange(height):
        for j in range(width):
            zr = z_real[i, j]
            zi = z_imag[i, j]
            cr = c_real[i, j]
            ci = c_imag[i, j]
            zr_sq = zr * zr
            zi_sq = zi * zi
            best = np.inf

            for n in range(max_iter):
                if burning_ship:
                    zi = 2.0 * abs(zr * zi) + ci
                else:
                    zi = 2.0 * zr * zi + ci
                zr = zr_sq - zi_sq + cr
                zr_sq = zr * zr
                zi_sq = zi * zi

                d = trap_distance(trap_kind, trap_params, zr, zi)
                if d < best:
                    best = d

                if zr_sq + zi_sq > escape_radius_sq:
                    iterations[i, j] = n
                    escaped[i, j] = True
                    break

            trap_min[i, j] = best
            final_mag[i, j] = zr_sq + zi_sq

    return iterations, escaped, trap_min, final_mag


class NumbaAccelerator:
    """Runs ``FractalIterator`` work through the compiled kernel."""

    def __init__(self):
        logger.info(f"Numba accelerator: numba {numba.__version__}")

    def iterate_array(self, iterator: FractalIterator, re: np.ndarray, im: np.ndarray) -> IterationResult:
        """
        Compiled counterpart of ``FractalIterator.iterate_array``.

        Args:
            iterator: Iteration settings (bounds, trap, fractal family)
            re: Real parts of the pixel coordinates
            im: Imaginary parts of the pixel coordinates

        Returns:
            IterationResult with the same shape as ``re``
        """
        shape = re.shape
        arrays = [np.ascontiguousarray(np.broadcast_to(a, shape), dtype=np.float64)
                  for a in iterator.fractal.initial_arrays(re, im)]
        trap_kind, trap_params = iterator.trap.kernel_args()

        iterations, escaped, trap_min, final_mag = escape_time_kernel(
            *arrays, iterator.max_iter, iterator.escape_radius_sq,
            iterator.fractal.variant, trap_kind, trap_params.astype(np.float64)
        )

        return IterationResult(iterations.reshape(shape), escaped.reshape(shape),
                               trap_min.reshape(shape), final_mag.reshape(shape))


# Global numba accelerator
_numba_accelerator = None


def get_numba_accelerator() -> NumbaAccelerator:
    """Get the global numba accelerator instance."""
    global _numba_accelerator
    if _numba_accelerator is None:
        _numba_accelerator = NumbaAccelerator()
    return _numba_accelerator
