"""Tests for profiles module."""

import pytest
from pydantic import ValidationError

from domain.models import LayerSettings, TerrainBuildSettings
from profiles import (
    PROFILES_DIR_ENV,
    delete_profile,
    ensure_profiles_dir,
    list_profiles,
    load_profile,
    profile_path,
    save_profile,
)


@pytest.fixture(autouse=True)
def profiles_dir(tmp_path, monkeypatch):
    folder = tmp_path / 'profiles'
    monkeypatch.setenv(PROFILES_DIR_ENV, str(folder))
    return folder


def create_test_settings(**overrides):
    """Create TerrainBuildSettings with default values for testing."""
    defaults = {'origin_lon': 7.65, 'origin_lat': 45.97, 'radius_m': 4000.0}
    defaults.update(overrides)
    return TerrainBuildSettings(**defaults)


class TestProfilesDir:
    """Tests for profile directory helpers."""

    def test_ensure_creates_dir(self, profiles_dir):
        assert ensure_profiles_dir() == profiles_dir
        assert profiles_dir.is_dir()

    def test_profile_path(self, profiles_dir):
        assert profile_path('alps') == profiles_dir / 'alps.toml'

    def test_list_profiles(self):
        save_profile('b', create_test_settings())
        save_profile('a', create_test_settings())
        assert list_profiles() == ['a', 'b']


class TestSaveLoad:
    """Tests for save_profile and load_profile."""

    def test_roundtrip_by_name(self):
        settings = create_test_settings(
            quad_size_m=50.0,
            blend_gauge_m=0.0,
            layers=[
                LayerSettings(name='Base'),
                LayerSettings(name='Water', matches=[('natural', 'water')]),
            ],
        )
        save_profile('matterhorn', settings)
        loaded = load_profile('matterhorn')
        assert loaded == settings

    def test_roundtrip_by_path(self, tmp_path):
        path = save_profile(tmp_path / 'custom.toml', create_test_settings(cache_dir='/tmp/x'))
        assert path == tmp_path / 'custom.toml'
        assert load_profile(path).cache_dir == '/tmp/x'

    def test_none_values_not_written(self):
        path = save_profile('plain', create_test_settings())
        assert 'cache_dir' not in path.read_text(encoding='utf-8')

    def test_hand_written_profile(self, profiles_dir):
        profiles_dir.mkdir(parents=True)
        (profiles_dir / 'hand.toml').write_text(
            'origin_lon = 10.0\n'
            'origin_lat = 50.0\n'
            'radius_m = 1500\n'
            '\n'
            '[[layers]]\n'
            'name = "Base"\n'
            '\n'
            '[[layers]]\n'
            'name = "Grass"\n'
            '\n'
            '[tile_source]\n'
            'tile_width = 512\n'
            'tile_height = 512\n',
            encoding='utf-8',
        )
        settings = load_profile('hand')
        assert settings.radius_m == 1500.0
        assert settings.layer_names == ['Base', 'Grass']
        assert settings.tile_source.tile_width == 512

    def test_missing_profile(self):
        with pytest.raises(FileNotFoundError):
            load_profile('does-not-exist')

    def test_invalid_profile(self, profiles_dir):
        profiles_dir.mkdir(parents=True)
        (profiles_dir / 'bad.toml').write_text(
            'origin_lon = 200.0\norigin_lat = 0.0\nradius_m = 10\n', encoding='utf-8'
        )
        with pytest.raises(ValidationError):
            load_profile('bad')


class TestDeleteProfile:
    """Tests for delete_profile."""

    def test_delete(self):
        save_profile('gone', create_test_settings())
        delete_profile('gone')
        assert 'gone' not in list_profiles()

    def test_delete_missing_is_noop(self):
        delete_profile('never-existed')
