import pytest
import numpy as np

from orbitrap.core.math_functions import IterationResult, PixelResult
from orbitrap.rendering.coloring import (ColorRGB, ColoringEngine, CosinePalette, EscapeTimeColoring,
                                         GradientPalette, OrbitTrapColoring, PaletteMapper,
                                         SmoothColoring, to_color)


def test_non_increasing_positions_are_rejected():
    with pytest.raises(ValueError):
        GradientPalette([(0.5, (1, 0, 0)), (0.2, (0, 0, 1))])


def test_palette_construction_errors():
    with pytest.raises(ValueError):
        GradientPalette([(0.0, (1, 0, 0))])
    with pytest.raises(ValueError):
        GradientPalette([(0.0, (1, 0, 0)), (1.5, (0, 0, 1))])
    with pytest.raises(ValueError):
        GradientPalette([(0.0, (0, 0, 0)), (float('nan'), (1, 0, 0)), (1.0, (1, 1, 1))])
    with pytest.raises(ValueError):
        GradientPalette([(0.0, (0, 0, 0)), (float('inf'), (1, 1, 1))])
    with pytest.raises(ValueError):
        GradientPalette([(0.0, (1, 0, 0)), (0.0, (0, 0, 1))])
    with pytest.raises(ValueError):
        GradientPalette([(0.0, (2, 0, 0)), (1.0, (0, 0, 1))])
    with pytest.raises(ValueError):
        GradientPalette([(0.0, 'not-a-color'), (1.0, (0, 0, 1))])


def test_gradient_interpolation():
    palette = GradientPalette([(0.0, (0, 0, 0)), (1.0, (1, 0.5, 0))])
    np.testing.assert_allclose(palette.interpolate(0.5), [0.5, 0.25, 0.0])
    assert palette.color_at(1.0) == ColorRGB(1.0, 0.5, 0.0)


def test_gradient_clamps_outside_unit_interval():
    palette = GradientPalette([(0.2, '#ff0000'), (0.8, '#0000ff')])
    np.testing.assert_allclose(palette.interpolate(np.array([-1.0, 0.0, 0.1])),
                               [[1, 0, 0]] * 3)
    np.testing.assert_allclose(palette.interpolate(2.0), [0, 0, 1])


@pytest.mark.parametrize('name', ['fire', 'ocean', 'rainbow', 'viridis'])
def test_palettes_are_continuous(engine, name):
    palette = engine.get_palette(name)
    t = np.linspace(0.0, 1.0, 2001)
    colors = palette.interpolate(t)

    assert colors.shape == (2001, 3)
    assert np.all((colors >= 0.0) & (colors <= 1.0))
    # neighbouring samples are 0.0005 apart
    assert np.max(np.abs(np.diff(colors, axis=0))) < 0.05


def test_cosine_palette_formula():
    palette = CosinePalette(a=(0.5, 0.5, 0.5), b=(0.5, 0.5, 0.5), c=(1, 1, 1), d=(0, 0, 0))
    np.testing.assert_allclose(palette.interpolate(0.0), [1.0, 1.0, 1.0])
    np.testing.assert_allclose(palette.interpolate(0.5), [0.0, 0.0, 0.0], atol=1e-12)

    with pytest.raises(ValueError):
        CosinePalette(a=(0.5, 0.5))


def test_to_color_accepts_common_forms():
    assert to_color('#ffffff') == ColorRGB(1.0, 1.0, 1.0)
    assert to_color('red') == ColorRGB(1.0, 0.0, 0.0)
    assert to_color([0, 0.5, 1]) == ColorRGB(0.0, 0.5, 1.0)
    assert ColorRGB.from_uint8(255, 0, 0).to_hex() == '#ff0000'
    with pytest.raises(ValueError):
        to_color(42)


def _result(escaped, iterations, distance, magnitude_sq=16.0):
    return IterationResult(np.array([[iterations]], dtype=np.int32),
                           np.array([[escaped]]),
                           np.array([[distance]], dtype=np.float64),
                           np.array([[magnitude_sq]], dtype=np.float64))


def test_orbit_trap_coloring_decays_with_distance():
    coloring = OrbitTrapColoring(falloff=2.0)
    near = coloring.normalize(_result(True, 5, 0.0), 100)
    far = coloring.normalize(_result(True, 5, 1.0), 100)
    assert near[0, 0] == 1.0
    assert far[0, 0] == pytest.approx(np.exp(-2.0))

    with pytest.raises(ValueError):
        OrbitTrapColoring(falloff=0.0)
    with pytest.raises(ValueError):
        OrbitTrapColoring(falloff=float('inf'))
    with pytest.raises(ValueError):
        OrbitTrapColoring(falloff=float('nan'))
    with pytest.raises(ValueError):
        OrbitTrapColoring(iteration_blend=1.5)


def test_iteration_based_colorings():
    result = _result(True, 25, 0.3)
    assert EscapeTimeColoring().normalize(result, 100)[0, 0] == 0.25
    smooth = SmoothColoring().normalize(result, 100)[0, 0]
    assert 0.0 <= smooth <= 1.0


def test_mapper_paints_inside_points(fire):
    mapper = PaletteMapper(fire, inside_color='#00ff00')
    inside = mapper.map_array(_result(False, 100, 0.01), 100)
    np.testing.assert_allclose(inside[0, 0], [0.0, 1.0, 0.0])

    default = PaletteMapper(fire).map_array(_result(False, 100, 0.01), 100)
    np.testing.assert_allclose(default[0, 0], [0.0, 0.0, 0.0])


def test_mapper_colors_escaped_points_from_palette(fire):
    mapper = PaletteMapper(fire, OrbitTrapColoring(falloff=1.0))
    rgb = mapper.map_array(_result(True, 3, 0.0), 50)
    np.testing.assert_allclose(rgb[0, 0], fire.interpolate(1.0))


def test_map_pixel_matches_map_array(fire):
    mapper = PaletteMapper(fire)
    pixel = PixelResult(escaped=True, iterations=7, trap_distance=0.35, final_magnitude_sq=9.0)
    expected = mapper.map_array(IterationResult.from_pixels([[pixel]]), 50)[0, 0]
    assert mapper.map_pixel(pixel, 50) == tuple(float(v) for v in expected)


def test_mapper_rejects_non_palette():
    with pytest.raises(ValueError):
        PaletteMapper('fire')


def test_engine_resolves_palette_specs(engine, tmp_path):
    assert engine.resolve_palette('hot').name == 'Hot'

    stops = engine.resolve_palette({'stops': [[0.0, '#000000'], [1.0, '#ffffff']], 'name': 'bw'})
    assert isinstance(stops, GradientPalette)
    assert stops.name == 'bw'

    cosine = engine.resolve_palette({'a': [0.5, 0.5, 0.5], 'd': [0.1, 0.2, 0.3]})
    assert isinstance(cosine, CosinePalette)

    with pytest.raises(ValueError):
        engine.resolve_palette('no-such-palette')
    with pytest.raises(ValueError):
        engine.resolve_palette({'stops': [[0.5, '#000000'], [0.2, '#ffffff']]})
    with pytest.raises(ValueError):
        engine.resolve_palette(12)


def test_gpl_palette_file(engine, tmp_path):
    path = tmp_path / 'ocean.gpl'
    engine.get_palette('ocean').save_to_file(path)

    loaded = engine.resolve_palette(str(path))
    assert loaded.name == 'Ocean'
    assert len(loaded.colors) == len(engine.get_palette('ocean').colors)


def test_engine_algorithms(engine):
    assert set(engine.list_algorithms()) == {'orbit_trap', 'smooth', 'escape_time'}
    coloring = ColoringEngine.create_algorithm('orbit_trap', falloff=3.0)
    assert coloring.falloff == 3.0
    with pytest.raises(ValueError):
        engine.create_algorithm('histogram')
