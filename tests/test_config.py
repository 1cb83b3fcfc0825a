from __future__ import annotations

import json

import pytest

from engine.core import load_config_from_env, validate_config
from engine.pipeline import PipelineContext


def test_empty_config_is_valid() -> None:
    assert validate_config({}) == []


def test_full_config_is_valid() -> None:
    config = {
        "scoring_weights": {"relevance": 0.5, "format": 0.2},
        "duration_bucket_sec": 3,
        "adapters": ["archive"],
        "ingest_workers": 4,
        "ingest_max_attempts": 3,
        "retry_delay_seconds": 0,
        "adapter_timeout_seconds": 7.5,
    }
    assert validate_config(config) == []


def test_invalid_values_are_reported() -> None:
    errors = validate_config(
        {
            "scoring_weights": {"vibes": 1.0, "format": -1},
            "duration_bucket_sec": 0,
            "ingest_workers": True,
            "retry_delay_seconds": -2,
            "adapter_timeout_seconds": 0,
            "adapters": "archive",
        }
    )
    assert "scoring_weights.vibes is not a known factor" in errors
    assert "scoring_weights.format must be a non-negative number" in errors
    assert "duration_bucket_sec must be a positive integer" in errors
    assert "ingest_workers must be a positive integer" in errors
    assert "retry_delay_seconds must be a non-negative number" in errors
    assert "adapter_timeout_seconds must be a positive number" in errors
    assert "adapters must be a list of source names" in errors


def test_non_object_config_is_rejected() -> None:
    assert validate_config(["archive"]) == ["config must be a JSON object"]


def test_load_config_from_env(tmp_path, monkeypatch) -> None:
    path = tmp_path / "songsift.json"
    path.write_text(json.dumps({"ingest_max_attempts": 3}))
    monkeypatch.setenv("SONGSIFT_CONFIG", str(path))
    assert load_config_from_env() == {"ingest_max_attempts": 3}

    monkeypatch.delenv("SONGSIFT_CONFIG")
    assert load_config_from_env() == {}


def test_pipeline_applies_config(pipeline_paths) -> None:
    pipeline = PipelineContext(
        pipeline_paths,
        config={
            "adapters": ["youtube"],
            "scoring_weights": {"format": 0.5},
            "duration_bucket_sec": 4,
            "ingest_max_attempts": 3,
            "retry_delay_seconds": 0,
        },
        start_workers=False,
    )
    assert list(pipeline.adapters) == ["youtube"]
    assert pipeline.weights["format"] == 0.5
    assert pipeline.weights["relevance"] == 0.45
    assert pipeline.bucket_width == 4
    assert pipeline.max_attempts == 3
    assert pipeline.worker.retry_delay_seconds == 0


def test_pipeline_rejects_invalid_config(pipeline_paths) -> None:
    with pytest.raises(ValueError):
        PipelineContext(pipeline_paths, config={"ingest_workers": -1}, start_workers=False)
