"""
Coloring algorithms and palette management for fractal rendering.

This module turns per-pixel iteration results into colors. A coloring
algorithm derives a normalized scalar from each result (orbit-trap
distance, smooth iteration count or raw escape time); a palette maps that
scalar to RGB. Both are chosen once per render and applied to whole arrays.
"""

import numpy as np
from typing import Dict, List, Tuple, Union, Optional, Sequence
from dataclasses import dataclass
from abc import ABC, abstractmethod
import logging
from pathlib import Path

import matplotlib.colors as mcolors
from matplotlib import colormaps

from ..core.math_functions import IterationResult, PixelResult

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ColorRGB:
    """RGB color representation."""
    r: float
    g: float
    b: float

    def __post_init__(self):
        """Validate RGB values."""
        for component in [self.r, self.g, self.b]:
            if not 0 <= component <= 1:
                raise ValueError("RGB components must be between 0 and 1")

    @classmethod
    def from_uint8(cls, r: int, g: int, b: int) -> 'ColorRGB':
        """Create color from 8-bit components."""
        return cls(r / 255.0, g / 255.0, b / 255.0)

    @classmethod
    def from_hex(cls, value: str) -> 'ColorRGB':
        """Create color from a '#rrggbb' string."""
        try:
            r, g, b = mcolors.to_rgb(value)
        except ValueError as e:
            raise ValueError(f"Invalid color: {value}") from e
        return cls(r, g, b)

    def to_tuple(self) -> Tuple[float, float, float]:
        """Convert to RGB tuple."""
        return (self.r, self.g, self.b)

    def to_uint8_tuple(self) -> Tuple[int, int, int]:
        """Convert to 8-bit RGB tuple."""
        return (int(self.r * 255), int(self.g * 255), int(self.b * 255))

    def to_hex(self) -> str:
        return mcolors.to_hex(self.to_tuple())


BLACK = ColorRGB(0.0, 0.0, 0.0)

ColorLike = Union[ColorRGB, Tuple[float, float, float], str]


def to_color(value: ColorLike) -> ColorRGB:
    """Coerce a ColorRGB, an (r, g, b) tuple in 0-1 or a color string."""
    if isinstance(value, ColorRGB):
        return value
    if isinstance(value, str):
        return ColorRGB.from_hex(value)
    if isinstance(value, (tuple, list)) and len(value) == 3:
        return ColorRGB(*(float(v) for v in value))
    raise ValueError(f"Invalid color format: {value}")


class Palette(ABC):
    """Mapping from a normalized scalar in [0, 1] to RGB."""

    name = "Palette"

    @abstractmethod
    def interpolate(self, t: Union[float, np.ndarray]) -> np.ndarray:
        """
        Map positions to colors.

        Args:
            t: Position(s) in the palette; values outside [0, 1] are clamped

        Returns:
            Array of shape ``t.shape + (3,)`` with values 0-1
        """
        pass

    def color_at(self, t: float) -> ColorRGB:
        """Interpolate a single color."""
        r, g, b = self.interpolate(np.float64(t))
        return ColorRGB(float(r), float(g), float(b))


class GradientPalette(Palette):
    """Control-point palette with linear interpolation between points."""

    def __init__(self, stops: Sequence[Tuple[float, ColorLike]], name: str = "Custom"):
        """
        Initialize color palette.

        Args:
            stops: (position, color) control points, positions strictly
                increasing within [0, 1]
            name: Human-readable name for the palette
        """
        self.name = name

        if len(stops) < 2:
            raise ValueError("Palette must contain at least 2 colors")

        positions = []
        colors = []
        for stop in stops:
            try:
                position, color = stop
            except (TypeError, ValueError) as e:
                raise ValueError(f"Invalid palette stop: {stop!r}") from e
            positions.append(float(position))
            colors.append(to_color(color))

        positions = np.array(positions, dtype=np.float64)
        if not np.all(np.isfinite(positions)):
            raise ValueError(f"Palette positions must be finite: {positions.tolist()}")
        if np.any(positions < 0.0) or np.any(positions > 1.0):
            raise ValueError("Palette positions must be between 0 and 1")
        if np.any(np.diff(positions) <= 0):
            raise ValueError(f"Palette positions must be strictly increasing: {positions.tolist()}")

        if positions[0] > 0.0 or positions[-1] < 1.0:
            logger.debug(f"Palette '{name}' does not cover [0, 1]; edge values clamp")

        self.positions = positions
        self.colors = colors
        self._rgb = np.array([c.to_tuple() for c in colors], dtype=np.float64)

    @classmethod
    def evenly_spaced(cls, colors: Sequence[ColorLike], name: str = "Custom") -> 'GradientPalette':
        """Create a palette whose colors are spread uniformly over [0, 1]."""
        if len(colors) < 2:
            raise ValueError("Palette must contain at least 2 colors")
        positions = np.linspace(0.0, 1.0, len(colors))
        return cls(list(zip(positions, colors)), name)

    def interpolate(self, t):
        t = np.clip(np.asarray(t, dtype=np.float64), 0.0, 1.0)
        channels = [np.interp(t, self.positions, self._rgb[:, k]) for k in range(3)]
        return np.stack(channels, axis=-1)

    def to_dict(self) -> Dict:
        return {'name': self.name,
                'stops': [[float(p), c.to_hex()] for p, c in zip(self.positions, self.colors)]}

    @classmethod
    def from_matplotlib(cls, cmap_name: str, n_samples: int = 32) -> 'GradientPalette':
        """Create palette from matplotlib colormap."""
        try:
            cmap = colormaps[cmap_name]
        except KeyError as e:
            raise ValueError(f"Unknown matplotlib colormap '{cmap_name}'") from e

        colors = [ColorRGB(*(float(v) for v in cmap(t)[:3])) for t in np.linspace(0, 1, n_samples)]
        return cls.evenly_spaced(colors, name=cmap_name)

    def save_to_file(self, filepath: Path) -> None:
        """Save palette to file in GPL format."""
        with open(filepath, 'w') as f:
            f.write("GIMP Palette\n")
            f.write(f"Name: {self.name}\n")
            f.write("#\n")

            for i, color in enumerate(self.colors):
                r, g, b = color.to_uint8_tuple()
                f.write(f"{r:3d} {g:3d} {b:3d} Color_{i}\n")

    @classmethod
    def load_from_file(cls, filepath: Path) -> 'GradientPalette':
        """Load palette from GPL file; colors are spread evenly."""
        colors = []
        name = Path(filepath).stem

        with open(filepath, 'r') as f:
            for line in f:
                line = line.strip()
                if line.startswith("Name:"):
                    name = line.split(":", 1)[1].strip()
                elif line and not line.startswith("#") and not line.startswith("GIMP"):
                    parts = line.split()
                    if len(parts) >= 3:
                        try:
                            r, g, b = int(parts[0]), int(parts[1]), int(parts[2])
                        except ValueError:
                            logger.debug(f"Skipping palette line: {line}")
                            continue
                        colors.append(ColorRGB.from_uint8(r, g, b))

        if not colors:
            raise ValueError(f"No valid colors found in {filepath}")

        return cls.evenly_spaced(colors, name)


class CosinePalette(Palette):
    """
    Procedural palette ``color(t) = a + b * cos(2*pi*(c*t + d))`` per channel.

    The result is clamped to [0, 1].
    """

    def __init__(self, a=(0.5, 0.5, 0.5), b=(0.5, 0.5, 0.5),
                 c=(1.0, 1.0, 1.0), d=(0.0, 0.33, 0.67), name: str = "Cosine"):
        self.name = name
        self.a, self.b, self.c, self.d = (np.array(v, dtype=np.float64) for v in (a, b, c, d))
        for label, v in zip('abcd', (self.a, self.b, self.c, self.d)):
            if v.shape != (3,) or not np.all(np.isfinite(v)):
                raise ValueError(f"Cosine palette coefficient '{label}' must be 3 finite numbers")

    def interpolate(self, t):
        t = np.clip(np.asarray(t, dtype=np.float64), 0.0, 1.0)[..., np.newaxis]
        rgb = self.a + self.b * np.cos(2.0 * np.pi * (self.c * t + self.d))
        return np.clip(rgb, 0.0, 1.0)

    def to_dict(self) -> Dict:
        return {'name': self.name, 'a': self.a.tolist(), 'b': self.b.tolist(),
                'c': self.c.tolist(), 'd': self.d.tolist()}


class ColoringAlgorithm(ABC):
    """Derives the normalized palette position from iteration results."""

    @abstractmethod
    def normalize(self, result: IterationResult, max_iter: int) -> np.ndarray:
        """
        Compute palette positions for escaped points.

        Args:
            result: Fractal iteration result
            max_iter: Maximum iterations for normalization

        Returns:
            Array of positions; values for non-escaped points are ignored
        """
        pass


class EscapeTimeColoring(ColoringAlgorithm):
    """Basic escape-time coloring algorithm."""

    def normalize(self, result, max_iter):
        return result.iterations.astype(np.float64) / max_iter


class SmoothColoring(ColoringAlgorithm):
    """Smooth/continuous coloring algorithm for band-free gradients."""

    def normalize(self, result, max_iter):
        return result.get_normalized_iterations(max_iter) / max_iter


class OrbitTrapColoring(ColoringAlgorithm):
    """Orbit trap coloring: the closer an orbit came to the trap, the nearer t is to 1."""

    def __init__(self, falloff: float = 4.0, iteration_blend: float = 0.0):
        """
        Initialize orbit trap coloring.

        Args:
            falloff: Decay rate of ``exp(-falloff * distance)``
            iteration_blend: Weight of the smooth iteration count mixed in
                to reduce banding (0 disables it)
        """
        if not (falloff > 0 and np.isfinite(falloff)):
            raise ValueError("falloff must be positive and finite")
        if not 0.0 <= iteration_blend <= 1.0:
            raise ValueError("iteration_blend must be between 0 and 1")
        self.falloff = float(falloff)
        self.iteration_blend = float(iteration_blend)

    def normalize(self, result, max_iter):
        t = np.exp(-self.falloff * result.trap_distance)
        if self.iteration_blend > 0.0:
            smooth = result.get_normalized_iterations(max_iter) / max_iter
            t = (1.0 - self.iteration_blend) * t + self.iteration_blend * smooth
        return t


class PaletteMapper:
    """Applies a coloring algorithm and a palette to iteration results."""

    def __init__(self, palette: Palette, coloring: Optional[ColoringAlgorithm] = None,
                 inside_color: Optional[ColorLike] = None):
        """
        Args:
            palette: Color palette to use
            coloring: Coloring algorithm (orbit trap by default)
            inside_color: Color for points that didn't escape (black by default)
        """
        if not isinstance(palette, Palette):
            raise ValueError(f"Invalid palette: {palette!r}")
        self.palette = palette
        self.coloring = coloring if coloring is not None else OrbitTrapColoring()
        self.inside_color = to_color(inside_color) if inside_color is not None else BLACK

    def map_array(self, result: IterationResult, max_iter: int) -> np.ndarray:
        """
        Color a whole result array.

        Returns:
            RGB image array (height, width, 3) with values 0-1
        """
        t = np.clip(self.coloring.normalize(result, max_iter), 0.0, 1.0)
        rgb_image = self.palette.interpolate(t)

        mask = ~result.escaped
        if np.any(mask):
            rgb_image[mask] = self.inside_color.to_tuple()

        return rgb_image

    def map_pixel(self, pixel: PixelResult, max_iter: int) -> Tuple[float, float, float]:
        """Color a single result."""
        rgb = self.map_array(IterationResult.from_pixels([[pixel]]), max_iter)[0, 0]
        return (float(rgb[0]), float(rgb[1]), float(rgb[2]))


class ColoringEngine:
    """Registry of built-in palettes and coloring algorithms."""

    algorithms = {
        'orbit_trap': OrbitTrapColoring,
        'smooth': SmoothColoring,
        'escape_time': EscapeTimeColoring,
    }

    def __init__(self):
        """Initialize coloring engine with built-in palettes."""
        self.palettes = self._create_builtin_palettes()

    def _create_builtin_palettes(self) -> Dict[str, Palette]:
        """Create built-in color palettes."""
        palettes = {}

        palettes['hot'] = GradientPalette.evenly_spaced([
            (0, 0, 0),      # Black
            (1, 0, 0),      # Red
            (1, 1, 0),      # Yellow
            (1, 1, 1),      # White
        ], name="Hot")

        palettes['cool'] = GradientPalette.evenly_spaced([
            (0, 0, 0),      # Black
            (0, 0, 1),      # Blue
            (0, 1, 1),      # Cyan
            (1, 1, 1),      # White
        ], name="Cool")

        palettes['gray'] = GradientPalette.evenly_spaced([
            (0, 0, 0),
            (1, 1, 1),
        ], name="Grayscale")

        palettes['fire'] = GradientPalette([
            (0.0, (0, 0, 0)),
            (0.2, (0.5, 0, 0)),
            (0.4, (1, 0, 0)),
            (0.6, (1, 0.5, 0)),
            (0.85, (1, 1, 0)),
            (1.0, (1, 1, 1)),
        ], name="Fire")

        palettes['ocean'] = GradientPalette.evenly_spaced([
            (0, 0, 0.2),        # Deep blue
            (0, 0, 0.8),        # Blue
            (0, 0.5, 1),        # Light blue
            (0, 1, 1),          # Cyan
            (0.5, 1, 1),        # Light cyan
            (1, 1, 1),          # White
        ], name="Ocean")

        palettes['rainbow'] = CosinePalette(name="Rainbow")
        palettes['sunset'] = CosinePalette(a=(0.5, 0.5, 0.5), b=(0.5, 0.5, 0.5),
                                           c=(1.0, 1.0, 0.5), d=(0.8, 0.9, 0.3), name="Sunset")
        palettes['electric'] = CosinePalette(a=(0.5, 0.5, 0.5), b=(0.5, 0.5, 0.5),
                                             c=(2.0, 1.0, 0.0), d=(0.5, 0.2, 0.25), name="Electric")

        for name in ['viridis', 'plasma', 'inferno', 'magma', 'twilight']:
            palettes[name] = GradientPalette.from_matplotlib(name, 32)

        return palettes

    def add_palette(self, name: str, palette: Palette) -> None:
        """Add a custom color palette."""
        self.palettes[name] = palette
        logger.info(f"Added color palette: {name}")

    def get_palette(self, name: str) -> Palette:
        """Get color palette by name."""
        if name not in self.palettes:
            available = ', '.join(self.palettes.keys())
            raise ValueError(f"Unknown color palette '{name}'. Available: {available}")
        return self.palettes[name]

    def resolve_palette(self, spec: Union[str, Dict, Palette]) -> Palette:
        """
        Build a palette from a configuration value.

        Args:
            spec: A Palette, a built-in palette name, a path to a ``.gpl``
                file, a ``{'stops': [[position, color], ...]}`` mapping or a
                ``{'a': ..., 'b': ..., 'c': ..., 'd': ...}`` cosine mapping

        Returns:
            Palette instance
        """
        if isinstance(spec, Palette):
            return spec

        if isinstance(spec, str):
            if spec.lower().endswith('.gpl'):
                return GradientPalette.load_from_file(Path(spec))
            return self.get_palette(spec)

        if isinstance(spec, dict):
            name = spec.get('name', 'Custom')
            if 'stops' in spec:
                return GradientPalette([tuple(stop) for stop in spec['stops']], name)
            if 'colors' in spec:
                return GradientPalette.evenly_spaced(spec['colors'], name)
            coefficients = {k: spec[k] for k in 'abcd' if k in spec}
            if coefficients:
                return CosinePalette(name=name, **coefficients)

        raise ValueError(f"Invalid palette specification: {spec!r}")

    @classmethod
    def create_algorithm(cls, name: str, **kwargs) -> ColoringAlgorithm:
        """Create a coloring algorithm by name."""
        if name not in cls.algorithms:
            available = ', '.join(cls.algorithms.keys())
            raise ValueError(f"Unknown coloring algorithm '{name}'. Available: {available}")
        return cls.algorithms[name](**kwargs)

    def list_algorithms(self) -> List[str]:
        """Get list of available coloring algorithms."""
        return list(self.algorithms.keys())

    def list_palettes(self) -> List[str]:
        """Get list of available color palettes."""
        return list(self.palettes.keys())
