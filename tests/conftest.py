import pytest

from orbitrap.core.math_functions import Viewport, RasterDimensions
from orbitrap.core.fractal_types import FractalParameters
from orbitrap.rendering.coloring import ColoringEngine


@pytest.fixture
def engine():
    return ColoringEngine()


@pytest.fixture
def fire(engine):
    return engine.get_palette('fire')


@pytest.fixture
def default_view():
    """The classic full view of the Mandelbrot set."""
    return Viewport(complex(-0.5, 0.0), 1.5)


@pytest.fixture
def small_dims():
    return RasterDimensions(40, 30)


@pytest.fixture
def quick_params():
    return FractalParameters(max_iterations=60, escape_radius=2.0)
