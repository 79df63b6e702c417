"""
Orbit-trap fractal rendering library.

This library renders escape-time fractals (Mandelbrot, Julia, Burning Ship)
colored by orbit trapping: every pixel's color comes from how close its
orbit passes to a geometric trap.

Example usage:
    >>> from orbitrap import render, Viewport, RasterDimensions, FractalParameters, ColoringEngine
    >>> palette = ColoringEngine().get_palette('fire')
    >>> raster = render(Viewport(complex(-0.5, 0), 1.5), RasterDimensions(640, 480),
    ...                 FractalParameters(max_iterations=200), palette)
    >>> raster.to_image().save('mandelbrot.png')
"""

__version__ = "1.0.0"
__author__ = "orbitrap developers"

from orbitrap.core.math_functions import (Viewport, RasterDimensions, ComplexPlane,
                                          FractalIterator, PixelResult, IterationResult)
from orbitrap.core.traps import OrbitTrap, PointTrap, CircleTrap, LineTrap, CrossTrap, create_trap
from orbitrap.core.fractal_types import (MandelbrotSet, JuliaSet, BurningShip, FractalParameters,
                                         FractalRegistry)
from orbitrap.rendering.coloring import (ColoringEngine, Palette, GradientPalette, CosinePalette,
                                         PaletteMapper, OrbitTrapColoring)
from orbitrap.rendering.image_output import ImageExporter, OutputRaster, RenderMetadata
from orbitrap.io.config import ConfigManager, ConfigError

# Main API
from orbitrap.api import render, evaluate, FractalRenderer, RenderConfig, BatchRenderer

__all__ = [
    "render",
    "evaluate",
    "FractalRenderer",
    "RenderConfig",
    "BatchRenderer",
    "Viewport",
    "RasterDimensions",
    "ComplexPlane",
    "FractalIterator",
    "PixelResult",
    "IterationResult",
    "OrbitTrap",
    "PointTrap",
    "CircleTrap",
    "LineTrap",
    "CrossTrap",
    "create_trap",
    "MandelbrotSet",
    "JuliaSet",
    "BurningShip",
    "FractalParameters",
    "FractalRegistry",
    "ColoringEngine",
    "Palette",
    "GradientPalette",
    "CosinePalette",
    "PaletteMapper",
    "OrbitTrapColoring",
    "ImageExporter",
    "OutputRaster",
    "RenderMetadata",
    "ConfigManager",
    "ConfigError",
]
