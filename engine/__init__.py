from .core import load_config, validate_config
from .models import Hit, IngestJob, InvalidPayloadError, MusicQuery, ResolvedMedia, ScoredHit
from .paths import PipelinePaths, build_pipeline_paths
from .runtime import get_runtime_info

__all__ = [
    "Hit",
    "IngestJob",
    "InvalidPayloadError",
    "MusicQuery",
    "PipelinePaths",
    "ResolvedMedia",
    "ScoredHit",
    "build_pipeline_paths",
    "get_runtime_info",
    "load_config",
    "validate_config",
]
