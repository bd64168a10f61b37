"""Tests for the command line entry point."""

import json
import logging
import signal
from unittest.mock import patch

import numpy as np
import pytest

import main
from domain.models import TerrainBuildSettings
from elevation.reprojector import TerrainTransform
from profiles import PROFILES_DIR_ENV, save_profile
from services.terrain_job import TerrainBuildResult
from shared.errors import ErrorKind
from shared.progress import CancelToken

setup_logging = main.setup_logging

BASE_ARGS = ['--lon', '10.0', '--lat', '50.0', '--radius', '1000', '--no-progress']


def ok_result():
    return TerrainBuildResult(
        success=True,
        message='ok',
        heights=np.zeros((4, 4), dtype=np.uint16),
        transform=TerrainTransform(1.0, 1.0, 1.0),
        weights={'Base': np.full((4, 4), 255, dtype=np.uint8)},
    )


@pytest.fixture(autouse=True)
def quiet_logging():
    with patch.object(main, 'setup_logging'):
        yield


@pytest.fixture
def run_job():
    with patch.object(main, 'run_terrain_job', return_value=ok_result()) as mock:
        yield mock


class TestSetupLogging:
    def test_log_file(self, tmp_path):
        root = logging.getLogger()
        saved_handlers, saved_level = root.handlers[:], root.level
        log_file = tmp_path / 'log' / 'terrain.log'
        try:
            setup_logging(log_file, verbose=True)
            assert root.level == logging.DEBUG
            logging.getLogger('test').info('hello')
            for handler in root.handlers:
                handler.flush()
            assert 'hello' in log_file.read_text(encoding='utf-8')
        finally:
            for handler in root.handlers:
                if handler not in saved_handlers:
                    handler.close()
            root.handlers = saved_handlers
            root.setLevel(saved_level)


class TestSettingsFromArgs:
    def test_command_line_only(self):
        args = main.build_parser().parse_args(BASE_ARGS + ['--quad-size', '50'])
        settings = main.settings_from_args(args)
        assert settings.origin_lon == 10.0
        assert settings.radius_m == 1000.0
        assert settings.quad_size_m == 50.0
        assert settings.blend_gauge_m == 10.0

    def test_profile_overridden(self, tmp_path, monkeypatch):
        monkeypatch.setenv(PROFILES_DIR_ENV, str(tmp_path))
        save_profile(
            'valley',
            TerrainBuildSettings(
                origin_lon=1.0, origin_lat=2.0, radius_m=3000.0, blend_gauge_m=25.0
            ),
        )
        args = main.build_parser().parse_args(['--profile', 'valley', '--radius', '500'])
        settings = main.settings_from_args(args)
        assert settings.origin_lon == 1.0
        assert settings.radius_m == 500.0
        assert settings.blend_gauge_m == 25.0


class TestMain:
    def test_success_writes_outputs(self, tmp_path, run_job):
        code = main.main(BASE_ARGS + ['--output-dir', str(tmp_path), '--stem', 'area'])
        assert code == 0
        assert (tmp_path / 'area.npz').exists()
        assert (tmp_path / 'area_height.png').exists()
        assert (tmp_path / 'area_weight_Base.png').exists()
        assert run_job.call_args.kwargs['ways'] == []

    def test_invalid_settings(self, run_job):
        assert main.main(['--lon', '10.0', '--no-progress']) == 2
        run_job.assert_not_called()

    def test_missing_profile(self, tmp_path, monkeypatch, run_job):
        monkeypatch.setenv(PROFILES_DIR_ENV, str(tmp_path))
        assert main.main(['--profile', 'nowhere', '--no-progress']) == 2

    def test_failed_build(self, tmp_path):
        failed = TerrainBuildResult(
            success=False, message='boom', error_kind=ErrorKind.NETWORK_FAILURE
        )
        with patch.object(main, 'run_terrain_job', return_value=failed):
            code = main.main(BASE_ARGS + ['--output-dir', str(tmp_path / 'out')])
        assert code == 1
        assert not (tmp_path / 'out').exists()

    def test_interrupted(self, tmp_path):
        with patch.object(main, 'run_terrain_job', side_effect=KeyboardInterrupt):
            assert main.main(BASE_ARGS + ['--output-dir', str(tmp_path)]) == 130

    def test_geojson_ways(self, tmp_path, run_job):
        geojson = tmp_path / 'landuse.geojson'
        ring = [[10.0, 50.0], [10.001, 50.0], [10.001, 50.001], [10.0, 50.0]]
        geojson.write_text(
            json.dumps(
                {
                    'type': 'FeatureCollection',
                    'features': [
                        {
                            'type': 'Feature',
                            'properties': {'landuse': 'forest'},
                            'geometry': {'type': 'Polygon', 'coordinates': [ring]},
                        }
                    ],
                }
            ),
            encoding='utf-8',
        )
        code = main.main(
            BASE_ARGS + ['--geojson', str(geojson), '--output-dir', str(tmp_path / 'out')]
        )
        assert code == 0
        ways = run_job.call_args.kwargs['ways']
        assert len(ways) == 1
        assert ways[0].category == 'forest'

    def test_unreadable_geojson(self, tmp_path, run_job):
        bad = tmp_path / 'bad.geojson'
        bad.write_text('{not json', encoding='utf-8')
        assert main.main(BASE_ARGS + ['--geojson', str(bad)]) == 2
        run_job.assert_not_called()


class TestInterruptHandling:
    """Ctrl+C sets the job's cancel token instead of killing the loop."""

    def test_first_interrupt_cancels_second_raises(self):
        original = signal.getsignal(signal.SIGINT)
        cancel = CancelToken()
        try:
            previous = main.install_interrupt_handler(cancel)
            assert previous is original
            handler = signal.getsignal(signal.SIGINT)
            handler(signal.SIGINT, None)
            assert cancel.is_cancelled()
            with pytest.raises(KeyboardInterrupt):
                handler(signal.SIGINT, None)
        finally:
            signal.signal(signal.SIGINT, original)

    def test_interrupt_during_job_cancels_build(self, tmp_path):
        original = signal.getsignal(signal.SIGINT)
        seen = {}

        def interrupted_job(settings, *, ways, sink, cancel):
            signal.getsignal(signal.SIGINT)(signal.SIGINT, None)
            seen['cancelled'] = cancel.is_cancelled()
            return TerrainBuildResult(
                success=False,
                message='Elevation download cancelled by user',
                error_kind=ErrorKind.USER_CANCELLED,
            )

        with patch.object(main, 'run_terrain_job', side_effect=interrupted_job):
            code = main.main(BASE_ARGS + ['--output-dir', str(tmp_path / 'out')])

        assert code == 130
        assert seen['cancelled'] is True
        assert signal.getsignal(signal.SIGINT) is original
        assert not (tmp_path / 'out').exists()
