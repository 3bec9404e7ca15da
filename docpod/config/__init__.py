"""Configuration module - exports Settings and load_config."""

from docpod.config.loader import load_config
from docpod.config.settings import Settings

__all__ = ["Settings", "load_config"]
