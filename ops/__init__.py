"""
Operations package for NZ Population Maps

This package centralizes the operational tools:
- Configuration management
- Pipeline orchestration (click CLI)
- Logging setup

The Config class is exposed at the package level for convenient imports:
    from ops import Config
"""

from .config_loader import Config

__all__ = ["Config"]
