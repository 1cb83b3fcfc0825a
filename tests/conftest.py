import sys
from pathlib import Path

import pytest


# Ensure tests can import project packages regardless of how pytest is invoked.
ROOT = Path(__file__).resolve().parents[1]
ROOT_STR = str(ROOT)
if ROOT_STR not in sys.path:
    sys.path.insert(0, ROOT_STR)

from engine.paths import build_pipeline_paths  # noqa: E402


@pytest.fixture
def pipeline_paths(tmp_path):
    return build_pipeline_paths(
        library_root=tmp_path / "library",
        staging_root=tmp_path / "staging",
        db_path=tmp_path / "db" / "ingest_jobs.sqlite",
        log_dir=tmp_path / "logs",
    )
