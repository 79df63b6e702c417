"""
Orbit trap geometries.

A trap is a point or simple shape in the complex plane. While a point is
iterated, the evaluator keeps the smallest distance between the orbit and
the trap; that distance drives the orbit-trap coloring.

Every trap exposes the same distance function three ways: a scalar form
for the per-pixel reference loop, a numpy form for vectorized evaluation,
and a ``(kind, params)`` pair consumed by the JIT kernel. All three use
the same arithmetic so results agree exactly.
"""

import math
import numpy as np
from typing import Dict, Any, Tuple
from abc import ABC, abstractmethod
import logging

logger = logging.getLogger(__name__)


# Kernel codes, see acceleration.numba_backend.trap_distance
TRAP_POINT = 0
TRAP_CIRCLE = 1
TRAP_LINE = 2
TRAP_CROSS = 3


def _finite_center(center) -> complex:
    center = complex(center)
    if not (math.isfinite(center.real) and math.isfinite(center.imag)):
        raise ValueError(f"Trap center must be finite, got {center!r}")
    return center


class OrbitTrap(ABC):
    """Abstract base class for orbit trap geometries."""

    name = "trap"

    @abstractmethod
    def distance(self, zr: float, zi: float) -> float:
        """Distance from a single orbit point to the trap."""
        pass

    @abstractmethod
    def distance_array(self, zr: np.ndarray, zi: np.ndarray) -> np.ndarray:
        """Element-wise distance from orbit points to the trap."""
        pass

    @abstractmethod
    def kernel_args(self) -> Tuple[int, np.ndarray]:
        """Return ``(kind, params)`` for the compiled kernel."""
        pass

    @abstractmethod
    def to_dict(self) -> Dict[str, Any]:
        """Convert trap to a configuration dictionary."""
        pass

    def __eq__(self, other):
        return type(self) is type(other) and self.to_dict() == other.to_dict()

    def __hash__(self):
        return hash(repr(self))

    def __repr__(self):
        params = ', '.join(f"{k}={v!r}" for k, v in self.to_dict().items() if k != 'type')
        return f"{self.__class__.__name__}({params})"


class PointTrap(OrbitTrap):
    """Distance to a single point."""

    name = "point"

    def __init__(self, center: complex = 0j):
        self.center = _finite_center(center)

    def distance(self, zr, zi):
        dx = zr - self.center.real
        dy = zi - self.center.imag
        return math.sqrt(dx * dx + dy * dy)

    def distance_array(self, zr, zi):
        dx = zr - self.center.real
        dy = zi - self.center.imag
        return np.sqrt(dx * dx + dy * dy)

    def kernel_args(self):
        return TRAP_POINT, np.array([self.center.real, self.center.imag, 0.0])

    def to_dict(self):
        return {'type': self.name, 'center': [self.center.real, self.center.imag]}


class CircleTrap(OrbitTrap):
    """Distance to the outline of a circle."""

    name = "circle"

    def __init__(self, center: complex = 0j, radius: float = 0.5):
        if not (radius > 0 and math.isfinite(radius)):
            raise ValueError("Circle trap radius must be positive and finite")
        self.center = _finite_center(center)
        self.radius = float(radius)

    def distance(self, zr, zi):
        dx = zr - self.center.real
        dy = zi - self.center.imag
        return abs(math.sqrt(dx * dx + dy * dy) - self.radius)

    def distance_array(self, zr, zi):
        dx = zr - self.center.real
        dy = zi - self.center.imag
        return np.abs(np.sqrt(dx * dx + dy * dy) - self.radius)

    def kernel_args(self):
        return TRAP_CIRCLE, np.array([self.center.real, self.center.imag, self.radius])

    def to_dict(self):
        return {'type': self.name, 'center': [self.center.real, self.center.imag],
                'radius': self.radius}


class LineTrap(OrbitTrap):
    """Distance to the line ``y = slope * x + intercept``."""

    name = "line"

    def __init__(self, slope: float = 1.0, intercept: float = 0.0):
        self.slope = float(slope)
        self.intercept = float(intercept)
        if not (math.isfinite(self.slope) and math.isfinite(self.intercept)):
            raise ValueError("Line trap slope and intercept must be finite")

        # Line in normal form a*x + b*y + c = 0 with a^2 + b^2 = 1
        norm = math.hypot(self.slope, 1.0)
        self._a = self.slope / norm
        self._b = -1.0 / norm
        self._c = self.intercept / norm

    def distance(self, zr, zi):
        return abs(self._a * zr + self._b * zi + self._c)

    def distance_array(self, zr, zi):
        return np.abs(self._a * zr + self._b * zi + self._c)

    def kernel_args(self):
        return TRAP_LINE, np.array([self._a, self._b, self._c])

    def to_dict(self):
        return {'type': self.name, 'slope': self.slope, 'intercept': self.intercept}


class CrossTrap(OrbitTrap):
    """Distance to the nearer of the horizontal and vertical lines through a point."""

    name = "cross"

    def __init__(self, center: complex = 0j):
        self.center = _finite_center(center)

    def distance(self, zr, zi):
        return min(abs(zr - self.center.real), abs(zi - self.center.imag))

    def distance_array(self, zr, zi):
        return np.minimum(np.abs(zr - self.center.real), np.abs(zi - self.center.imag))

    def kernel_args(self):
        return TRAP_CROSS, np.array([self.center.real, self.center.imag, 0.0])

    def to_dict(self):
        return {'type': self.name, 'center': [self.center.real, self.center.imag]}


TRAP_TYPES = {
    'point': PointTrap,
    'circle': CircleTrap,
    'line': LineTrap,
    'cross': CrossTrap,
}


def create_trap(name: str, **kwargs) -> OrbitTrap:
    """
    Create an orbit trap by name.

    Args:
        name: Trap type ('point', 'circle', 'line', 'cross')
        **kwargs: Trap parameters; ``center`` may be a complex number
            or a ``[real, imag]`` pair

    Returns:
        Configured trap instance
    """
    trap_class = TRAP_TYPES.get(name.lower())
    if trap_class is None:
        available = ', '.join(TRAP_TYPES.keys())
        raise ValueError(f"Unknown trap type '{name}'. Available: {available}")

    if 'center' in kwargs and isinstance(kwargs['center'], (list, tuple)):
        real, imag = kwargs['center']
        kwargs['center'] = complex(real, imag)

    try:
        return trap_class(**kwargs)
    except TypeError as e:
        raise ValueError(f"Invalid parameters for {name} trap: {e}") from e


def trap_from_dict(data: Dict[str, Any]) -> OrbitTrap:
    """Create a trap from the dictionary produced by ``to_dict``."""
    params = dict(data)
    name = params.pop('type', 'point')
    return create_trap(name, **params)
