"""
netguard - Network liveness guard with hysteresis and edge-triggered actions
"""

__version__ = "0.1.0"

from loguru import logger

__all__ = ["__version__", "logger"]
