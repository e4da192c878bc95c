"""
Version 1 of the HTTP API
"""

from . import endpoints

__all__ = ["endpoints"]
