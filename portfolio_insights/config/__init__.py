"""Configuration: settings, prompt templates and logging."""

from .log_setup import configure_logging
from .settings import EngineSettings, ModelSettings, get_engine_settings, get_model_settings

__all__ = [
    "ModelSettings",
    "EngineSettings",
    "get_model_settings",
    "get_engine_settings",
    "configure_logging",
]
