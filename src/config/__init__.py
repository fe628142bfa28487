"""Configuration module - exports the Settings model.

Settings are built where they are needed (``Settings()`` in the CLI, or
passed in by callers) so importing this package never reads the
environment.
"""

from src.config.settings import Settings

__all__ = ["Settings"]
