"""
Configuration module for the cable harmonization pipeline.
"""

from .regions import RegionInfo, RegionRegistry
from .settings import Config, ConfigurationError, HttpConfig, OutputConfig

__all__ = [
    'Config',
    'ConfigurationError',
    'HttpConfig',
    'OutputConfig',
    'RegionInfo',
    'RegionRegistry',
]
