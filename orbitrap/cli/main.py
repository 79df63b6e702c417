"""
Command-line interface for orbit-trap fractal rendering.

This module provides the ``orbitrap`` command with subcommands for single
renders, batch jobs, configuration templates and listing the available
fractals, traps and palettes.
"""

import click
import sys
from pathlib import Path
from typing import Dict, Any, Tuple
import logging
import time

from .. import __version__
from ..api import FractalRenderer, BatchRenderer
from ..core.fractal_types import FractalRegistry, JULIA_PRESETS
from ..core.traps import TRAP_TYPES
from ..core.math_functions import Viewport
from ..acceleration.multiprocessing import BACKENDS
from ..rendering.coloring import ColoringEngine
from ..io.config import ConfigManager, load_config_from_args

logger = logging.getLogger(__name__)


def _fail(ctx, error: Exception):
    """Report an error and exit with status 1."""
    click.echo(f"Error: {error}", err=True)
    if ctx.obj.get('verbose'):
        import traceback
        traceback.print_exc()
    sys.exit(1)


def parse_complex(text: str) -> Tuple[float, float]:
    """Parse ``"real,imag"`` into a pair of floats."""
    parts = [p.strip() for p in text.split(',')]
    if len(parts) != 2:
        raise click.BadParameter(f"expected 'real,imag', got '{text}'")
    try:
        return float(parts[0]), float(parts[1])
    except ValueError:
        raise click.BadParameter(f"expected 'real,imag', got '{text}'")


def parse_trap_params(items) -> Dict[str, Any]:
    """Parse repeated ``key=value`` trap options."""
    params = {}
    for item in items:
        key, sep, value = item.partition('=')
        if not sep:
            raise click.BadParameter(f"expected key=value, got '{item}'")
        key = key.strip()
        params[key] = list(parse_complex(value)) if key == 'center' else float(value)
    return params


@click.group(invoke_without_command=True)
@click.option('--version', is_flag=True, help='Show version information')
@click.option('--config', type=click.Path(exists=True), help='Configuration file path')
@click.option('--preset', help='Configuration preset to use')
@click.option('--verbose', '-v', is_flag=True, help='Enable verbose logging')
@click.option('--quiet', '-q', is_flag=True, help='Suppress most output')
@click.pass_context
def main(ctx, version, config, preset, verbose, quiet):
    """
    orbitrap - orbit-trap fractal renderer.

    Render Mandelbrot, Julia and Burning Ship images colored by how close
    each orbit passes to a geometric trap.
    """
    # Setup logging
    if quiet:
        logging.basicConfig(level=logging.ERROR)
    elif verbose:
        logging.basicConfig(level=logging.DEBUG,
                            format='%(asctime)s - %(name)s - %(levelname)s - %(message)s')
    else:
        logging.basicConfig(level=logging.INFO,
                            format='%(levelname)s: %(message)s')

    if version:
        click.echo(f"orbitrap v{__version__}")
        click.echo(f"Python: {sys.version}")
        if ctx.invoked_subcommand is None:
            sys.exit(0)

    # Store global options in context
    ctx.ensure_object(dict)
    ctx.obj['config_file'] = config
    ctx.obj['preset'] = preset
    ctx.obj['verbose'] = verbose
    ctx.obj['quiet'] = quiet

    if ctx.invoked_subcommand is None and not version:
        click.echo(ctx.get_help())


@main.command()
@click.argument('output', type=click.Path())
@click.option('--fractal', '-f', type=click.Choice(FractalRegistry.names()), help='Fractal type')
@click.option('--width', '-w', type=int, help='Image width')
@click.option('--height', '-h', type=int, help='Image height')
@click.option('--center', type=str, help='Viewport center "real,imag"')
@click.option('--half-height', type=float, help='Half of the visible imaginary extent')
@click.option('--zoom', type=float, help='Zoom factor relative to the default view')
@click.option('--max-iter', type=int, help='Maximum iterations')
@click.option('--escape-radius', type=float, help='Escape radius')
@click.option('--trap', type=click.Choice(list(TRAP_TYPES.keys())), help='Orbit trap shape')
@click.option('--trap-param', multiple=True, help='Trap parameter key=value (repeatable)')
@click.option('--palette', help='Palette name or .gpl file')
@click.option('--algorithm', type=click.Choice(list(ColoringEngine.algorithms.keys())),
              help='Coloring algorithm')
@click.option('--falloff', type=float, help='Orbit-trap falloff')
@click.option('--blend', type=float, help='Blend of smooth iteration count into trap coloring (0-1)')
@click.option('--julia-c', type=str, help='Julia constant "real,imag" or preset name')
@click.option('--backend', type=click.Choice(BACKENDS), help='Evaluation backend')
@click.option('--workers', type=int, help='Number of worker processes')
@click.option('--tile-size', type=int, help='Tile size for parallel rendering')
@click.option('--quality', type=int, help='JPEG quality (1-100)')
@click.option('--no-metadata', is_flag=True, help='Do not embed render metadata')
@click.option('--raw', is_flag=True, help='Also save the raw pixel array (.npy)')
@click.pass_context
def render(ctx, output, **kwargs):
    """
    Render a single fractal image.

    OUTPUT: Output image file path (.png, .tiff or .jpg)
    """
    try:
        overrides = {
            'fractal': kwargs['fractal'],
            'width': kwargs['width'],
            'height': kwargs['height'],
            'half_height': kwargs['half_height'],
            'max_iterations': kwargs['max_iter'],
            'escape_radius': kwargs['escape_radius'],
            'trap': kwargs['trap'],
            'color_palette': kwargs['palette'],
            'coloring_algorithm': kwargs['algorithm'],
            'falloff': kwargs['falloff'],
            'iteration_blend': kwargs['blend'],
            'backend': kwargs['backend'],
            'num_processes': kwargs['workers'],
            'tile_size': kwargs['tile_size'],
            'jpeg_quality': kwargs['quality'],
        }

        if kwargs['center']:
            overrides['center'] = list(parse_complex(kwargs['center']))
        if kwargs['zoom']:
            overrides['half_height'] = Viewport.from_zoom(0j, kwargs['zoom']).half_height
        if kwargs['trap_param']:
            overrides['trap_params'] = parse_trap_params(kwargs['trap_param'])
        if kwargs['julia_c']:
            julia_c = kwargs['julia_c']
            c = julia_c if julia_c in JULIA_PRESETS else list(parse_complex(julia_c))
            overrides['fractal_params'] = {'c': c}
            if not kwargs['fractal']:
                overrides['fractal'] = 'julia'
        if kwargs['no_metadata']:
            overrides['save_metadata'] = False
        if kwargs['raw']:
            overrides['save_raw_data'] = True

        render_config = load_config_from_args(ctx.obj.get('config_file'), ctx.obj.get('preset'), overrides)
        renderer = FractalRenderer(render_config)

        def progress_callback(completed, total):
            if ctx.obj.get('verbose'):
                click.echo(f"Progress: {completed}/{total} tiles")

        if not ctx.obj.get('quiet'):
            click.echo(f"Rendering {render_config.fractal} fractal...")
        start_time = time.time()

        renderer.render(Path(output), progress_callback)

        if not ctx.obj.get('quiet'):
            click.echo(f"Render complete: {time.time() - start_time:.2f}s")
            click.echo(f"Saved: {output}")

    except (ValueError, OSError, click.BadParameter) as e:
        _fail(ctx, e)


@main.command()
@click.argument('config_file', type=click.Path(exists=True))
@click.option('--output-dir', '-o', type=click.Path(), default='batch_output',
              help='Output directory for batch renders')
@click.option('--dry-run', is_flag=True, help='Show what would be rendered without actually rendering')
@click.pass_context
def batch(ctx, config_file, output_dir, dry_run):
    """
    Execute batch rendering jobs from configuration file.

    CONFIG_FILE: Batch configuration file (JSON or YAML) with a
    'batch_jobs' list; each job has a 'name', an optional 'format' and
    RenderConfig overrides.
    """
    try:
        manager = ConfigManager()
        batch_config = manager.load_config(config_file)

        jobs = batch_config.get('batch_jobs')
        if not jobs:
            click.echo("Error: No 'batch_jobs' section found in config file", err=True)
            sys.exit(1)

        base_config = manager.build_render_config(batch_config, ctx.obj.get('preset'))
        batch_renderer = BatchRenderer(base_config)
        output_path = Path(output_dir)

        for job_config in jobs:
            job_config = dict(job_config)
            job_name = job_config.pop('name', f"job_{len(batch_renderer.jobs)}")
            image_format = job_config.pop('format', 'png')
            output_file = output_path / f"{job_name}.{image_format}"

            if dry_run:
                click.echo(f"Would render: {job_name} -> {output_file}")
                continue

            batch_renderer.add_job(output_file, job_config, job_name)

        if dry_run:
            click.echo(f"Dry run complete. {len(jobs)} jobs would be executed.")
            return

        output_path.mkdir(parents=True, exist_ok=True)
        click.echo(f"Starting batch render: {len(batch_renderer.jobs)} jobs")

        def progress_callback(completed, total, result):
            click.echo(f"Completed {completed}/{total}: {result['job_name']} ({result['status']})")

        batch_renderer.run_batch(progress_callback)

        summary = batch_renderer.get_summary()
        click.echo("\nBatch complete:")
        click.echo(f"  Jobs completed: {summary['completed']}/{summary['total_jobs']}")
        click.echo(f"  Success rate: {summary['success_rate']*100:.1f}%")
        click.echo(f"  Total time: {summary['total_render_time']:.2f}s")
        click.echo(f"  Average time: {summary['average_render_time']:.2f}s per job")

        if summary['failed']:
            sys.exit(1)

    except (ValueError, OSError) as e:
        _fail(ctx, e)


@main.command()
@click.option('--output', '-o', type=click.Path(), default='orbitrap.yaml',
              help='Output file path (.yaml, .yml or .json)')
@click.option('--preset', 'preset_name', help='Start from a preset instead of the defaults')
@click.pass_context
def init_config(ctx, output, preset_name):
    """
    Create a configuration file with every setting filled in.
    """
    try:
        manager = ConfigManager()
        render_config = manager.build_render_config(preset=preset_name or ctx.obj.get('preset'))
        path = manager.save_config(render_config, Path(output))
        click.echo(f"Configuration written: {path}")

    except (ValueError, OSError) as e:
        _fail(ctx, e)


@main.command()
@click.pass_context
def list_presets(ctx):
    """List available configuration presets."""
    manager = ConfigManager()

    click.echo("Available presets:")
    for name in manager.list_presets():
        click.echo(f"  {name}")
        if ctx.obj.get('verbose'):
            for key, value in manager.get_preset(name).items():
                click.echo(f"    {key}: {value}")


@main.command()
@click.pass_context
def list_fractals(ctx):
    """List available fractal types and Julia presets."""
    click.echo("Available fractal types:")
    for name, description in FractalRegistry.list_fractals().items():
        click.echo(f"  {name}")
        if ctx.obj.get('verbose'):
            click.echo(f"    {description}")

    click.echo("\nJulia set presets:")
    for name, c in JULIA_PRESETS.items():
        click.echo(f"  {name}: c = {c}")


@main.command()
def list_traps():
    """List available orbit trap shapes and their parameters."""
    click.echo("Available orbit traps:")
    for name, trap_class in TRAP_TYPES.items():
        params = ', '.join(f"{k}={v}" for k, v in trap_class().to_dict().items() if k != 'type')
        click.echo(f"  {name}: {params}")


@main.command()
def list_palettes():
    """List available color palettes and coloring algorithms."""
    engine = ColoringEngine()

    click.echo("Available color palettes:")
    for palette in engine.list_palettes():
        click.echo(f"  {palette}")

    click.echo("\nAvailable coloring algorithms:")
    for algorithm in engine.list_algorithms():
        click.echo(f"  {algorithm}")


if __name__ == '__main__':
    main()
