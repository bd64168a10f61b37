import logging
import os
from pathlib import Path

import tomlkit

from domain.models import TerrainBuildSettings

logger = logging.getLogger(__name__)

PROFILES_DIR_ENV = 'TERRAIN_PROFILES_DIR'


def _user_profiles_dir() -> Path:
    """
    Determine profiles directory.

    1) $TERRAIN_PROFILES_DIR when set.
    2) <project_root>/configs/profiles if it exists (run-from-repo setups).
    3) ~/.config/terrain-grid/profiles otherwise.
    """
    override = os.getenv(PROFILES_DIR_ENV)
    if override:
        return Path(override).expanduser()

    project_root = Path(__file__).resolve().parent.parent
    local_profiles = project_root / 'configs' / 'profiles'
    if local_profiles.exists():
        return local_profiles

    return Path.home() / '.config' / 'terrain-grid' / 'profiles'


def ensure_profiles_dir() -> Path:
    profiles_dir = _user_profiles_dir()
    profiles_dir.mkdir(parents=True, exist_ok=True)
    return profiles_dir


def list_profiles() -> list[str]:
    """Profile names without extension."""
    folder = ensure_profiles_dir()
    return sorted(p.stem for p in folder.glob('*.toml') if p.is_file())


def profile_path(name: str) -> Path:
    return ensure_profiles_dir() / f'{name}.toml'


def load_profile(name_or_path: str | Path) -> TerrainBuildSettings:
    """
    Load and validate a TOML profile.

    Accepts either a profile name (without .toml) from the profiles
    directory or a path to a TOML file.
    """
    p = Path(name_or_path)
    path = p if p.suffix.lower() == '.toml' and p.exists() else profile_path(str(name_or_path))
    if not path.exists():
        msg = f'Profile not found: {path}'
        raise FileNotFoundError(msg)
    text = path.read_text(encoding='utf-8')
    data = tomlkit.parse(text).unwrap()
    settings = TerrainBuildSettings.model_validate(data)
    logger.info(
        'Profile %s loaded: origin=(%.6f, %.6f) radius=%.1f m quad=%.2f m layers=%s',
        path.name,
        settings.origin_lon,
        settings.origin_lat,
        settings.radius_m,
        settings.quad_size_m,
        settings.layer_names,
    )
    return settings


def save_profile(name_or_path: str | Path, settings: TerrainBuildSettings) -> Path:
    """Write a profile as TOML (no atomic replace, no backups)."""
    p = Path(name_or_path)
    path = p if p.suffix.lower() == '.toml' else profile_path(str(name_or_path))
    path.parent.mkdir(parents=True, exist_ok=True)
    data = settings.model_dump(mode='json', exclude_none=True)
    text = tomlkit.dumps(data)
    path.write_text(text, encoding='utf-8')
    return path


def delete_profile(name: str) -> None:
    """Remove a profile file if it exists."""
    path = profile_path(name)
    if path.exists():
        path.unlink()
