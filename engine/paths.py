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
            "library": Path("/data/music"),
            "staging": Path("/data/staging"),
            "logs": Path("/logs"),
        }
    base = PROJECT_ROOT / "data"
    return {
        "data": base,
        "library": base / "music",
        "staging": base / "staging",
        "logs": base / "logs",
    }


_DEFAULTS = _default_root_paths()

DATA_DIR = Path(os.environ.get("SONGSIFT_DATA_DIR", _DEFAULTS["data"])).resolve()
LIBRARY_DIR = Path(os.environ.get("SONGSIFT_LIBRARY_DIR", _DEFAULTS["library"])).resolve()
STAGING_DIR = Path(os.environ.get("SONGSIFT_STAGING_DIR", _DEFAULTS["staging"])).resolve()
LOG_DIR = Path(os.environ.get("SONGSIFT_LOG_DIR", _DEFAULTS["logs"])).resolve()
DB_PATH = Path(os.environ.get("SONGSIFT_DB_PATH", DATA_DIR / "database" / "ingest_jobs.sqlite")).resolve()


@dataclass(frozen=True)
class PipelinePaths:
    library_root: str
    staging_root: str
    db_path: str
    log_dir: str


def ensure_dir(path):
    if path:
        os.makedirs(path, exist_ok=True)


def build_pipeline_paths(*, library_root=None, staging_root=None, db_path=None, log_dir=None):
    library_root = Path(library_root or LIBRARY_DIR)
    staging_root = Path(staging_root or STAGING_DIR)
    db_path = Path(db_path or DB_PATH)
    log_dir = Path(log_dir or LOG_DIR)

    # Both roots must exist or be creatable before any job runs.
    for d in (library_root, staging_root, db_path.parent, log_dir):
        ensure_dir(d)

    return PipelinePaths(
        library_root=str(library_root),
        staging_root=str(staging_root),
        db_path=str(db_path),
        log_dir=str(log_dir),
    )
