import os
from dataclasses import dataclass
from pathlib import Path


PROJECT_ROOT = Path(__file__).resolve().parent.parent

def _is_container_runtime():
    if os.path.exists("/.dockerenv"):
        return True
    return os.path.isdir("/data")


def _default_root_paths():
    if _is_container_runtime():
        return {
            "data": Path("/data"),
            "logs": Path("/logs"),
        }
    base = PROJECT_ROOT / "data"
    return {
        "data": base,
        "logs": base / "logs",
    }


@dataclass(frozen=True)
class AppPaths:
    data_dir: str
    log_dir: str
    db_path: str | None
    sites_dir: str
    site_id: str | None


def ensure_dir(path):
    if path:
        os.makedirs(path, exist_ok=True)


def _is_within_base(path, base_dir):
    real = os.path.realpath(path)
    base = os.path.realpath(base_dir)
    return os.path.commonpath([real, base]) == base


def resolve_data_file(path, base_dir):
    if os.path.isabs(path):
        resolved = os.path.abspath(path)
    else:
        resolved = os.path.abspath(os.path.join(base_dir, path))
    if not _is_within_base(resolved, base_dir):
        # Site configs may only place catalogs under the data directory.
        raise ValueError(f"Path must be within base directory: {base_dir}")
    ensure_dir(os.path.dirname(resolved))
    return resolved


def _env_path(name, default):
    value = os.environ.get(name)
    return Path(value if value else default).resolve()


def build_app_paths():
    # Read per call so tests and multi-site deployments can redirect storage.
    defaults = _default_root_paths()
    data_dir = _env_path("LYRICSHELF_DATA_DIR", defaults["data"])
    default_log_dir = defaults["logs"]
    if os.environ.get("LYRICSHELF_DATA_DIR"):
        default_log_dir = data_dir / "logs"
    log_dir = _env_path("LYRICSHELF_LOG_DIR", default_log_dir)
    db_override = os.environ.get("LYRICSHELF_DB_PATH")
    sites_dir = _env_path("LYRICSHELF_SITES_DIR", PROJECT_ROOT / "config" / "site_profiles")
    site_id = (os.environ.get("LYRICSHELF_SITE") or "").strip() or None

    for d in (data_dir, log_dir):
        ensure_dir(d)

    return AppPaths(
        data_dir=str(data_dir),
        log_dir=str(log_dir),
        db_path=str(Path(db_override).resolve()) if db_override else None,
        sites_dir=str(sites_dir),
        site_id=site_id,
    )
