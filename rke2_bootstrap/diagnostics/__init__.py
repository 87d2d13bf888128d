"""Logging configuration."""

from .logger import setup_logging

__all__ = ["setup_logging"]
