"""Command line entry point of the terrain grid builder."""

import argparse
import json
import logging
import signal
import sys
from pathlib import Path

from pydantic import ValidationError

from blend.classification import ways_from_geojson
from domain.models import TerrainBuildSettings
from geo.projection import LocalProjection
from profiles import load_profile
from services.outputs import save_outputs
from services.terrain_job import run_terrain_job
from shared.constants import LOG_FORMAT
from shared.diagnostics import log_memory_usage
from shared.errors import ErrorKind
from shared.progress import CancelToken, ConsoleProgress, NullProgress

logger = logging.getLogger(__name__)


def setup_logging(log_file: Path | None = None, *, verbose: bool = False) -> None:
    """Configure root logging to stdout and, optionally, a file."""
    handlers: list[logging.Handler] = [logging.StreamHandler(sys.stdout)]
    if log_file is not None:
        log_file.parent.mkdir(parents=True, exist_ok=True)
        handlers.append(logging.FileHandler(str(log_file), encoding='utf-8'))
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format=LOG_FORMAT,
        handlers=handlers,
        force=True,
    )


def install_interrupt_handler(cancel: CancelToken):
    """
    Route Ctrl+C to ``cancel`` so the running job stops at its next check.

    A second Ctrl+C raises KeyboardInterrupt. Returns the previous handler.
    """

    def _on_interrupt(signum, frame):
        if cancel.is_cancelled():
            raise KeyboardInterrupt
        logger.warning('Interrupt received, cancelling the build...')
        cancel.cancel()

    return signal.signal(signal.SIGINT, _on_interrupt)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description='Build a reprojected height grid and land-use blend weights '
        'from Terrarium elevation tiles'
    )
    parser.add_argument('--profile', help='TOML profile name or path')
    parser.add_argument('--lon', type=float, help='Origin longitude (WGS84)')
    parser.add_argument('--lat', type=float, help='Origin latitude (WGS84)')
    parser.add_argument('--radius', type=float, help='Half extent of the area (m)')
    parser.add_argument('--quad-size', type=float, help='Grid spacing (m)')
    parser.add_argument('--blend-gauge', type=float, help='Soft edge width of land-use polygons (m)')
    parser.add_argument('--geojson', type=Path, help='Land-use polygons (GeoJSON, WGS84)')
    parser.add_argument('--cache-dir', help='Tile cache directory')
    parser.add_argument('--output-dir', type=Path, default=Path('output'), help='Output directory')
    parser.add_argument('--stem', default='terrain', help='Output file name stem')
    parser.add_argument('--log-file', type=Path, help='Also write the log to this file')
    parser.add_argument('--no-progress', action='store_true', help='Disable the progress bar')
    parser.add_argument('-v', '--verbose', action='store_true', help='Debug logging')
    return parser


def settings_from_args(args: argparse.Namespace) -> TerrainBuildSettings:
    """Profile values overridden by explicit command line options."""
    data: dict = {}
    if args.profile:
        data = load_profile(args.profile).model_dump()
    overrides = {
        'origin_lon': args.lon,
        'origin_lat': args.lat,
        'radius_m': args.radius,
        'quad_size_m': args.quad_size,
        'blend_gauge_m': args.blend_gauge,
        'cache_dir': args.cache_dir,
    }
    data.update({k: v for k, v in overrides.items() if v is not None})
    return TerrainBuildSettings.model_validate(data)


def main(argv: list[str] | None = None) -> int:
    args = build_parser().parse_args(argv)
    setup_logging(args.log_file, verbose=args.verbose)

    try:
        settings = settings_from_args(args)
    except (FileNotFoundError, ValidationError) as e:
        logger.error('Invalid settings: %s', e)
        return 2

    ways = []
    if args.geojson is not None:
        try:
            data = json.loads(args.geojson.read_text(encoding='utf-8'))
        except (OSError, ValueError) as e:
            logger.error('Cannot read %s: %s', args.geojson, e)
            return 2
        projection = LocalProjection(settings.origin_lon, settings.origin_lat)
        ways = ways_from_geojson(data, projection)

    log_memory_usage('startup')
    sink = NullProgress() if args.no_progress else ConsoleProgress()
    cancel = CancelToken()
    previous_handler = install_interrupt_handler(cancel)
    try:
        result = run_terrain_job(settings, ways=ways, sink=sink, cancel=cancel)
    except KeyboardInterrupt:
        logger.warning('Interrupted')
        return 130
    finally:
        signal.signal(signal.SIGINT, previous_handler)
        if isinstance(sink, ConsoleProgress):
            sink.close()

    if result.error_kind is ErrorKind.USER_CANCELLED:
        logger.warning('Build cancelled: %s', result.message)
        return 130

    if not result.success:
        logger.error('Build failed: %s', result.message)
        return 1

    paths = save_outputs(result, args.output_dir, args.stem)
    for kind, path in paths.items():
        logger.info('%s -> %s', kind, path)
    return 0


if __name__ == '__main__':
    sys.exit(main())
