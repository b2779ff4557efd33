"""
Idata Shared Module
===================

Configuration, logging and console helpers used by every Idata component.
"""

from shared.config import IdataConfig, get_config

__all__ = ["IdataConfig", "get_config"]
