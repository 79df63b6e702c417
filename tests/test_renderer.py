import pytest
import numpy as np

from orbitrap.api import BatchRenderer, FractalRenderer, RenderConfig, evaluate, render
from orbitrap.core.math_functions import RasterDimensions, Viewport
from orbitrap.core.fractal_types import FractalParameters, JuliaSet
from orbitrap.core.traps import CircleTrap
from orbitrap.acceleration.multiprocessing import create_tile_grid
from orbitrap.rendering.coloring import OrbitTrapColoring
from orbitrap.rendering.image_output import ImageExporter


def test_center_of_main_cardioid_never_escapes():
    result = evaluate(Viewport(complex(-0.5, 0.0), 1.5), RasterDimensions(100, 100),
                      FractalParameters(max_iterations=50, escape_radius=2.0))
    center = result.pixel(50, 50)
    assert not center.escaped
    assert center.iterations == 50


def test_region_outside_the_set_escapes_quickly():
    result = evaluate(Viewport(complex(2.0, 2.0), 0.1), RasterDimensions(10, 10),
                      FractalParameters(max_iterations=50, escape_radius=2.0))
    assert result.escaped.all()
    assert (result.iterations <= 3).all()


def test_render_produces_full_raster(default_view, small_dims, quick_params, fire):
    raster = render(default_view, small_dims, quick_params, fire)
    assert (raster.width, raster.height) == (40, 30)
    assert raster.pixels.dtype == np.uint8
    # main cardioid center is inside the set and painted black
    assert raster.pixel(20, 15) == (0, 0, 0)


def test_render_is_deterministic(default_view, small_dims, quick_params, fire):
    first = render(default_view, small_dims, quick_params, fire)
    second = render(default_view, small_dims, quick_params, fire)
    assert first == second


def test_tiling_does_not_change_the_image(default_view, small_dims, quick_params, fire):
    whole = render(default_view, small_dims, quick_params, fire, tile_size=256)
    tiled = render(default_view, small_dims, quick_params, fire, tile_size=7)
    assert whole == tiled


def test_python_backend_matches_numpy(default_view, quick_params, fire):
    dims = RasterDimensions(24, 16)
    reference = render(default_view, dims, quick_params, fire, backend='python')
    vectorized = render(default_view, dims, quick_params, fire, backend='numpy')

    difference = np.abs(reference.pixels.astype(int) - vectorized.pixels.astype(int))
    assert difference.max() <= 1


def test_numba_backend_matches_numpy(default_view, small_dims, fire):
    params = FractalParameters(max_iterations=60, trap=CircleTrap(0j, 0.5))
    compiled = render(default_view, small_dims, params, fire, backend='numba')
    vectorized = render(default_view, small_dims, params, fire, backend='numpy')

    difference = np.abs(compiled.pixels.astype(int) - vectorized.pixels.astype(int))
    assert difference.max() <= 1


def test_worker_processes_match_single_process(default_view, small_dims, quick_params, fire):
    serial = render(default_view, small_dims, quick_params, fire, tile_size=16)
    parallel = render(default_view, small_dims, quick_params, fire, workers=2, tile_size=16)
    assert serial == parallel


def test_progress_callback_sees_every_tile(default_view, small_dims, quick_params, fire):
    calls = []
    render(default_view, small_dims, quick_params, fire, tile_size=16,
           progress_callback=lambda done, total: calls.append((done, total)))
    assert calls == [(1, 6), (2, 6), (3, 6), (4, 6), (5, 6), (6, 6)]


def test_render_rejects_bad_inputs_up_front(default_view, small_dims, quick_params, fire):
    with pytest.raises(ValueError):
        render(default_view, small_dims, quick_params, fire, backend='opencl')
    with pytest.raises(ValueError):
        render(default_view, small_dims, quick_params, fire, workers=0)
    with pytest.raises(ValueError):
        render(default_view, (40, 30), quick_params, fire)
    with pytest.raises(ValueError):
        render(default_view, small_dims, quick_params, 'fire')


def test_coloring_choice_changes_the_image(default_view, small_dims, quick_params, fire):
    sharp = render(default_view, small_dims, quick_params, fire, coloring=OrbitTrapColoring(falloff=8.0))
    soft = render(default_view, small_dims, quick_params, fire, coloring=OrbitTrapColoring(falloff=0.5))
    assert sharp != soft


def test_tile_grid_covers_raster_once():
    tiles = create_tile_grid(50, 33, 16)
    coverage = np.zeros((33, 50), dtype=int)
    for tile in tiles:
        coverage[tile.y_start:tile.y_end, tile.x_start:tile.x_end] += 1
    assert (coverage == 1).all()

    with pytest.raises(ValueError):
        create_tile_grid(10, 10, 0)


def test_render_config_builds_render_inputs():
    config = RenderConfig(width=64, height=48, center=(0.0, 0.0), half_height=1.2,
                          fractal='julia', fractal_params={'c': [-0.8, 0.156]},
                          trap='circle', trap_params={'radius': 0.3})
    config.validate()

    assert config.viewport() == Viewport(0j, 1.2)
    assert config.dimensions() == RasterDimensions(64, 48)
    params = config.fractal_parameters()
    assert params.fractal == JuliaSet(complex(-0.8, 0.156))
    assert params.trap == CircleTrap(0j, 0.3)

    restored = RenderConfig.from_dict(config.to_dict())
    assert restored.fractal_parameters() == params


def test_render_config_validation():
    with pytest.raises(ValueError):
        RenderConfig(width=0).validate()
    with pytest.raises(ValueError):
        RenderConfig(backend='cuda').validate()
    with pytest.raises(ValueError):
        RenderConfig(trap='spiral').validate()
    with pytest.raises(ValueError):
        RenderConfig(center=(1.0,)).validate()
    with pytest.raises(ValueError):
        RenderConfig.from_dict({'resolution': 4})


def test_fractal_renderer_saves_with_metadata(tmp_path):
    config = RenderConfig(width=32, height=24, max_iterations=40, color_palette='ocean')
    output = tmp_path / 'mandelbrot.png'

    raster = FractalRenderer(config).render(output)

    assert output.exists()
    metadata = ImageExporter().extract_metadata_from_image(output)
    assert metadata.resolution == [32, 24]
    assert metadata.max_iterations == 40
    assert metadata.color_palette == 'Ocean'
    assert metadata.trap['type'] == 'point'
    assert raster.width == 32


def test_fractal_renderer_rejects_unknown_palette():
    with pytest.raises(ValueError):
        FractalRenderer(RenderConfig(color_palette='nope'))


def test_batch_renderer_records_failures(tmp_path):
    batch = BatchRenderer(RenderConfig(width=16, height=12, max_iterations=20))
    batch.add_job(tmp_path / 'good.png', {'trap': 'cross'}, 'good')
    batch.add_job(tmp_path / 'bad.png', {'color_palette': 'nope'}, 'bad')

    results = batch.run_batch()

    assert [r['status'] for r in results] == ['completed', 'failed']
    assert (tmp_path / 'good.png').exists()
    summary = batch.get_summary()
    assert summary['completed'] == 1
    assert summary['failed'] == 1
    assert summary['success_rate'] == 0.5
