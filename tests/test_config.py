import json

import pytest
import yaml

from orbitrap.api import RenderConfig
from orbitrap.core.math_functions import Viewport
from orbitrap.io.config import ConfigError, ConfigManager, PRESETS, load_config_from_args


@pytest.fixture
def manager():
    return ConfigManager()


def test_load_yaml_and_json(tmp_path, manager):
    yaml_path = tmp_path / 'render.yaml'
    yaml_path.write_text("width: 320\nheight: 240\ncenter: [-0.75, 0.1]\ntrap: cross\n")
    json_path = tmp_path / 'render.json'
    json_path.write_text(json.dumps({'width': 320, 'max_iterations': 90}))

    assert manager.load_config(yaml_path) == {'width': 320, 'height': 240,
                                              'center': [-0.75, 0.1], 'trap': 'cross'}
    assert manager.load_config(json_path)['max_iterations'] == 90


def test_empty_file_is_empty_config(tmp_path, manager):
    path = tmp_path / 'empty.yml'
    path.write_text("")
    assert manager.load_config(path) == {}


def test_load_errors(tmp_path, manager):
    with pytest.raises(ConfigError):
        manager.load_config(tmp_path / 'missing.yaml')

    bad_suffix = tmp_path / 'render.toml'
    bad_suffix.write_text("width = 3")
    with pytest.raises(ConfigError):
        manager.load_config(bad_suffix)

    broken = tmp_path / 'broken.yaml'
    broken.write_text("width: [1, 2\n")
    with pytest.raises(ConfigError):
        manager.load_config(broken)

    not_mapping = tmp_path / 'list.json'
    not_mapping.write_text("[1, 2, 3]")
    with pytest.raises(ConfigError):
        manager.load_config(not_mapping)


def test_config_error_is_value_error():
    assert issubclass(ConfigError, ValueError)


def test_build_render_config_layers_values(manager):
    config = manager.build_render_config({'width': 100, 'max_iterations': 300},
                                         preset='seahorse_valley',
                                         overrides={'max_iterations': 50})

    assert isinstance(config, RenderConfig)
    assert config.width == 100
    assert config.max_iterations == 50
    assert config.trap == 'circle'
    assert config.viewport() == Viewport(complex(-0.7453, 0.1127), 0.0065)


def test_build_render_config_rejects_bad_input(manager):
    with pytest.raises(ConfigError):
        manager.build_render_config({'colour': 'red'})
    with pytest.raises(ConfigError):
        manager.build_render_config(preset='nowhere')
    with pytest.raises(ConfigError):
        manager.build_render_config({'max_iterations': -5})
    with pytest.raises(ConfigError):
        manager.build_render_config({'color_palette': {'stops': [[0.5, 'red'], [0.2, 'blue']]}})


def test_batch_jobs_are_not_render_settings(manager):
    config = manager.build_render_config({'width': 64, 'batch_jobs': [{'name': 'a'}]})
    assert config.width == 64


@pytest.mark.parametrize('name', sorted(PRESETS))
def test_every_preset_is_valid(manager, name):
    config = manager.build_render_config(preset=name)
    config.fractal_parameters()
    assert name in manager.list_presets()


def test_julia_preset_uses_julia_fractal(manager):
    config = manager.build_render_config(preset='julia_dendrite')
    assert config.fractal_parameters().fractal.name == 'Julia'


@pytest.mark.parametrize('suffix', ['.yaml', '.json'])
def test_save_and_reload(tmp_path, manager, suffix):
    original = manager.build_render_config(preset='elephant_valley', overrides={'inside_color': (0.1, 0.2, 0.3)})
    path = manager.save_config(original, tmp_path / f'saved{suffix}')

    reloaded = manager.build_render_config(manager.load_config(path))
    assert reloaded.viewport() == original.viewport()
    assert reloaded.fractal_parameters() == original.fractal_parameters()
    assert list(reloaded.inside_color) == [0.1, 0.2, 0.3]


def test_saved_yaml_is_plain(tmp_path, manager):
    path = manager.save_config(RenderConfig(), tmp_path / 'plain.yaml')
    data = yaml.safe_load(path.read_text())
    assert data['center'] == [-0.5, 0.0]
    assert data['color_palette'] == 'fire'


def test_load_config_from_args(tmp_path):
    path = tmp_path / 'job.yaml'
    path.write_text("width: 48\nheight: 32\n")

    config = load_config_from_args(path, overrides={'height': None, 'trap': 'line'})
    assert config.width == 48
    assert config.height == 32
    assert config.trap == 'line'
