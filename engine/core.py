import json
import logging
import os

from config.settings import SCORING_WEIGHTS

_POSITIVE_INT_KEYS = ("duration_bucket_sec", "ingest_workers", "ingest_max_attempts")


def load_config(path):
    with open(path, "r") as f:
        return json.load(f)


def load_config_from_env(env_var="SONGSIFT_CONFIG"):
    """Load the optional JSON config named by ``env_var``; ``{}`` when unset."""
    path = os.environ.get(env_var)
    if not path:
        return {}
    config = load_config(path)
    logging.info("Loaded config from %s", path)
    return config


def validate_config(config):
    errors = []
    if not isinstance(config, dict):
        return ["config must be a JSON object"]

    weights = config.get("scoring_weights")
    if weights is not None:
        if not isinstance(weights, dict):
            errors.append("scoring_weights must be an object")
        else:
            for key, value in weights.items():
                if key not in SCORING_WEIGHTS:
                    errors.append(f"scoring_weights.{key} is not a known factor")
                elif isinstance(value, bool) or not isinstance(value, (int, float)) or value < 0:
                    errors.append(f"scoring_weights.{key} must be a non-negative number")

    for key in _POSITIVE_INT_KEYS:
        value = config.get(key)
        if value is None:
            continue
        if isinstance(value, bool) or not isinstance(value, int) or value <= 0:
            errors.append(f"{key} must be a positive integer")

    delay = config.get("retry_delay_seconds")
    if delay is not None and (isinstance(delay, bool) or not isinstance(delay, (int, float)) or delay < 0):
        errors.append("retry_delay_seconds must be a non-negative number")

    timeout = config.get("adapter_timeout_seconds")
    if timeout is not None and (isinstance(timeout, bool) or not isinstance(timeout, (int, float)) or timeout <= 0):
        errors.append("adapter_timeout_seconds must be a positive number")

    adapters = config.get("adapters")
    if adapters is not None:
        if not isinstance(adapters, list) or not all(isinstance(name, str) and name.strip() for name in adapters):
            errors.append("adapters must be a list of source names")

    return errors
