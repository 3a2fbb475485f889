"""Shared FastAPI dependencies.

The engine is built once per process from the environment and cached, the
way model artifacts are loaded lazily on first use.
"""

import logging
import threading
from typing import Optional

from smartbuy.config import EngineConfig
from smartbuy.recommender.engine import SuggestionEngine

# Configure module logger
logger = logging.getLogger(__name__)

_engine: Optional[SuggestionEngine] = None
_engine_lock = threading.Lock()


def get_engine() -> SuggestionEngine:
    """Return the process-wide engine, loading it on first use."""
    global _engine

    if _engine is None:
        with _engine_lock:
            if _engine is None:
                config = EngineConfig.from_env()
                logger.info(f"Loading suggestion engine from {config.data_dir}")
                _engine = SuggestionEngine.from_data_dir(config)
    return _engine


def reset_engine() -> None:
    """Drop the cached engine so the next request reloads it."""
    global _engine
    with _engine_lock:
        _engine = None
