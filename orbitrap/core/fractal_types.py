"""
Fractal type definitions and parameter management.

A fractal type decides the starting value, the parameter and the recurrence
variant fed to the escape-time iteration. The set is closed: Mandelbrot,
Julia and Burning Ship all share the quadratic inner loop.
"""

import math
import numpy as np
from typing import Dict, Any, Optional, Tuple
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
import logging

from .math_functions import (FractalIterator, Viewport, VARIANT_QUADRATIC,
                             VARIANT_BURNING_SHIP)
from .traps import OrbitTrap, PointTrap

logger = logging.getLogger(__name__)


class FractalType(ABC):
    """Abstract base class for fractal types."""

    variant = VARIANT_QUADRATIC

    def __init__(self, name: str):
        """
        Initialize fractal type.

        Args:
            name: Human-readable name for the fractal
        """
        self.name = name

    @abstractmethod
    def initial_state(self, point: complex) -> Tuple[complex, complex]:
        """Return (z0, c) for a pixel coordinate."""
        pass

    @abstractmethod
    def initial_arrays(self, re: np.ndarray, im: np.ndarray) -> Tuple[np.ndarray, ...]:
        """Return (z0_real, z0_imag, c_real, c_imag) arrays for a coordinate grid."""
        pass

    @abstractmethod
    def get_recommended_viewport(self) -> Viewport:
        """Get the recommended initial view."""
        pass

    @abstractmethod
    def to_dict(self) -> Dict[str, Any]:
        """Convert fractal parameters to dictionary."""
        pass

    def get_description(self) -> str:
        """Get a description of this fractal type."""
        return f"{self.name} fractal"

    def __eq__(self, other):
        return type(self) is type(other) and self.to_dict() == other.to_dict()

    def __hash__(self):
        return hash(repr(self.to_dict()))

    def __repr__(self):
        return f"{self.__class__.__name__}({self.to_dict()!r})"


class MandelbrotSet(FractalType):
    """Mandelbrot set: the pixel is the parameter c."""

    def __init__(self, z0: complex = 0j):
        """
        Initialize Mandelbrot set.

        Args:
            z0: Starting value of the orbit (usually 0)
        """
        super().__init__("Mandelbrot")
        self.z0 = complex(z0)

    def initial_state(self, point):
        return self.z0, complex(point)

    def initial_arrays(self, re, im):
        return (np.full_like(re, self.z0.real, dtype=np.float64),
                np.full_like(im, self.z0.imag, dtype=np.float64),
                re, im)

    def get_recommended_viewport(self):
        return Viewport(complex(-0.5, 0.0), 1.5)

    def to_dict(self):
        return {'z0': [self.z0.real, self.z0.imag]}

    def get_description(self):
        return ("Mandelbrot set: z_{n+1} = z_n^2 + c, where c is the complex coordinate "
                "and z_0 = " + str(self.z0))


class JuliaSet(FractalType):
    """Julia set: the pixel is the starting value z0."""

    def __init__(self, c: complex = complex(-0.75, 0.1)):
        """
        Initialize Julia set.

        Args:
            c: Julia constant
        """
        super().__init__("Julia")
        self.c = complex(c)

    def initial_state(self, point):
        return complex(point), self.c

    def initial_arrays(self, re, im):
        return (re, im,
                np.full_like(re, self.c.real, dtype=np.float64),
                np.full_like(im, self.c.imag, dtype=np.float64))

    def get_recommended_viewport(self):
        return Viewport(0j, 1.5)

    def to_dict(self):
        return {'c': [self.c.real, self.c.imag]}

    def get_description(self):
        return f"Julia set: z_{{n+1}} = z_n^2 + c, where c = {self.c} and z_0 is the complex coordinate"


class BurningShip(MandelbrotSet):
    """Burning Ship fractal."""

    variant = VARIANT_BURNING_SHIP

    def __init__(self, z0: complex = 0j):
        super().__init__(z0)
        self.name = "Burning Ship"

    def get_recommended_viewport(self):
        return Viewport(complex(-0.5, -0.5), 1.5)

    def get_description(self):
        return "Burning Ship: z_{n+1} = (|Re(z_n)| + i|Im(z_n)|)^2 + c"


class FractalRegistry:
    """Lookup of the available fractal types by name."""

    _fractals: Dict[str, type] = {
        'mandelbrot': MandelbrotSet,
        'julia': JuliaSet,
        'burning_ship': BurningShip,
    }

    @classmethod
    def get(cls, name: str) -> type:
        """
        Get a fractal class by name.

        Args:
            name: Fractal identifier

        Returns:
            Fractal class
        """
        fractal_class = cls._fractals.get(name.lower())
        if fractal_class is None:
            available = ', '.join(cls._fractals.keys())
            raise ValueError(f"Unknown fractal type '{name}'. Available: {available}")
        return fractal_class

    @classmethod
    def names(cls):
        return list(cls._fractals.keys())

    @classmethod
    def list_fractals(cls) -> Dict[str, str]:
        """Get a dictionary of available fractals and their descriptions."""
        return {name: fractal_class().get_description()
                for name, fractal_class in cls._fractals.items()}

    @classmethod
    def create_fractal(cls, name: str, **kwargs) -> FractalType:
        """
        Create a fractal instance with the given parameters.

        Complex parameters may be given as complex numbers or [real, imag]
        pairs, or as the name of an entry in JULIA_PRESETS.

        Args:
            name: Fractal type name
            **kwargs: Parameters for the fractal

        Returns:
            Configured fractal instance
        """
        fractal_class = cls.get(name)

        params = {}
        for key, value in kwargs.items():
            if isinstance(value, (list, tuple)):
                value = complex(*value)
            elif isinstance(value, str) and value in JULIA_PRESETS:
                value = JULIA_PRESETS[value]
            params[key] = value

        try:
            return fractal_class(**params)
        except TypeError as e:
            raise ValueError(f"Invalid parameters for {name}: {e}") from e


# Predefined interesting Julia set constants
JULIA_PRESETS = {
    'dragon': complex(-0.75, 0.1),
    'spiral': complex(-0.4, 0.6),
    'dendrite': complex(-0.235125, 0.827215),
    'lightning': complex(-0.8, 0.156),
    'rabbit': complex(-0.123, 0.745),
    'airplane': complex(-1.25, 0.0),
    'san_marco': complex(-0.75, 0.0),
    'siegel_disk': complex(-0.391, -0.587),
}


@dataclass(frozen=True)
class FractalParameters:
    """Iteration settings shared by every pixel of one render."""

    max_iterations: int = 1000
    escape_radius: float = 2.0
    trap: OrbitTrap = field(default_factory=PointTrap)
    fractal: FractalType = field(default_factory=MandelbrotSet)

    def __post_init__(self):
        """Validate parameter values."""
        if isinstance(self.max_iterations, bool) or not isinstance(self.max_iterations, (int, np.integer)):
            raise ValueError("max_iterations must be an integer")
        if self.max_iterations <= 0:
            raise ValueError("max_iterations must be positive")
        if not (self.escape_radius > 0 and math.isfinite(self.escape_radius)):
            raise ValueError("escape_radius must be positive")
        if not isinstance(self.trap, OrbitTrap):
            raise ValueError("trap must be an OrbitTrap")
        if not isinstance(self.fractal, FractalType):
            raise ValueError("fractal must be a FractalType")

    @property
    def escape_radius_sq(self) -> float:
        return float(self.escape_radius) ** 2

    def iterator(self) -> FractalIterator:
        """Create the escape-time iterator for these parameters."""
        return FractalIterator(self.max_iterations, self.escape_radius, self.trap, self.fractal)

    def to_dict(self) -> Dict[str, Any]:
        """Convert parameters to dictionary."""
        return {
            'max_iterations': int(self.max_iterations),
            'escape_radius': float(self.escape_radius),
            'trap': self.trap.to_dict(),
            'fractal': {'type': _fractal_key(self.fractal), **self.fractal.to_dict()},
        }


def _fractal_key(fractal: FractalType) -> str:
    for name, fractal_class in FractalRegistry._fractals.items():
        if type(fractal) is fractal_class:
            return name
    return fractal.name.lower()
