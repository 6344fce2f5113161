"""
Configuration loading.

Settings live in config.yaml at the repository root. Missing files or
sections fall back to DEFAULT_CONFIG.
"""

from __future__ import annotations

import copy
from pathlib import Path
from typing import Any

import yaml

DEFAULT_CONFIG: dict[str, Any] = {
    "data": {
        "db_path": "./data/research.db",
        "vector_db_path": "./data/vectordb",
    },
    "embeddings": {"model": "all-MiniLM-L6-v2", "batch_size": 32},
    "retrieval": {"default_limit": 10},
    "hybrid": {
        "keyword_weight": 0.5,
        "semantic_weight": 0.5,
        "claim_threshold": 0.5,
    },
    "review": {"stale_days": 30, "random_count": 5},
    "chunking": {"target_tokens": 2000, "overlap_percent": 15},
    "server": {"host": "127.0.0.1", "port": 8000},
}


def load_config(config_path: Path | None = None) -> dict[str, Any]:
    """Load configuration from YAML file, filling gaps from the defaults."""
    if config_path is None:
        config_path = Path(__file__).parent.parent / "config.yaml"

    config = copy.deepcopy(DEFAULT_CONFIG)
    if not config_path.exists():
        return config

    with open(config_path) as f:
        loaded = yaml.safe_load(f) or {}

    for section, values in loaded.items():
        if isinstance(values, dict) and isinstance(config.get(section), dict):
            config[section].update(values)
        else:
            config[section] = values
    return config
