import json

import pytest
import numpy as np
from PIL import Image

from orbitrap.rendering.image_output import ImageExporter, OutputRaster, RenderMetadata, to_uint8


@pytest.fixture
def raster():
    pixels = np.zeros((12, 20, 3), dtype=np.uint8)
    pixels[:, :10] = (255, 128, 0)
    pixels[3, 15] = (1, 2, 3)
    return OutputRaster(pixels)


@pytest.fixture
def metadata():
    return RenderMetadata(
        fractal_type='Mandelbrot',
        center=(-0.5, 0.0),
        half_height=1.5,
        resolution=(20, 12),
        max_iterations=100,
        escape_radius=2.0,
        trap={'type': 'point', 'center': [0.0, 0.0]},
        coloring_algorithm='orbit_trap',
        color_palette='Fire',
        backend='numpy',
        render_time_seconds=0.25,
    )


def test_raster_accessors(raster):
    assert (raster.width, raster.height) == (20, 12)
    assert raster.pixel(15, 3) == (1, 2, 3)
    assert raster.pixel(0, 0) == (255, 128, 0)
    assert raster.to_image().size == (20, 12)


def test_raster_validation():
    with pytest.raises(ValueError):
        OutputRaster(np.zeros((4, 4), dtype=np.uint8))
    with pytest.raises(ValueError):
        OutputRaster(np.zeros((4, 4, 3), dtype=np.float64))


def test_float_conversion_clips():
    rgb = np.array([[[-0.5, 0.5, 2.0]]])
    assert OutputRaster.from_float(rgb).pixel(0, 0) == (0, 127, 255)
    assert to_uint8(np.array([[[300, -2, 7]]])).tolist() == [[[255, 0, 7]]]


def test_png_round_trip_with_metadata(tmp_path, raster, metadata):
    exporter = ImageExporter()
    path = exporter.save_image(raster, tmp_path / 'out.png', metadata)

    with Image.open(path) as img:
        np.testing.assert_array_equal(np.asarray(img), raster.pixels)

    restored = exporter.extract_metadata_from_image(path)
    assert restored.fractal_type == 'Mandelbrot'
    assert restored.max_iterations == 100
    assert restored.trap == {'type': 'point', 'center': [0.0, 0.0]}


def test_tiff_keeps_pixels_and_metadata(tmp_path, raster, metadata):
    exporter = ImageExporter()
    path = exporter.save_image(raster, tmp_path / 'out.tiff', metadata)

    with Image.open(path) as img:
        np.testing.assert_array_equal(np.asarray(img.convert('RGB')), raster.pixels)

    restored = exporter.extract_metadata_from_image(path)
    assert restored.color_palette == 'Fire'


def test_jpeg_writes_companion_metadata(tmp_path, raster, metadata):
    exporter = ImageExporter()
    path = exporter.save_image(raster, tmp_path / 'out.jpg', metadata, quality=80)

    assert path.exists()
    companion = tmp_path / 'out.json'
    assert json.loads(companion.read_text())['backend'] == 'numpy'
    assert exporter.extract_metadata_from_image(path).half_height == 1.5


def test_unsupported_format_and_quality(tmp_path, raster):
    exporter = ImageExporter()
    with pytest.raises(ValueError):
        exporter.save_image(raster, tmp_path / 'out.bmp')
    with pytest.raises(ValueError):
        exporter.save_image(raster, tmp_path / 'out.jpg', quality=0)


def test_image_without_metadata(tmp_path, raster):
    exporter = ImageExporter()
    path = exporter.save_image(raster, tmp_path / 'nested' / 'plain.png')
    assert path.exists()
    assert exporter.extract_metadata_from_image(path) is None


def test_raw_data_round_trip(tmp_path, raster, metadata):
    exporter = ImageExporter()
    path = exporter.save_raw_data(raster, tmp_path / 'pixels', metadata)
    assert path.suffix == '.npy'

    loaded, loaded_metadata = exporter.load_raw_data(path)
    assert loaded == raster
    assert loaded_metadata.render_time_seconds == 0.25


def test_metadata_json_round_trip(metadata):
    restored = RenderMetadata.from_json(metadata.to_json())
    assert restored.timestamp == metadata.timestamp
    assert restored.software_version == metadata.software_version
