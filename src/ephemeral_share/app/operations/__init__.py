"""Background operations for the share service."""

from .reaper import ReapFailure, ReapReport, ShareReaper

__all__ = [
    'ReapFailure',
    'ReapReport',
    'ShareReaper',
]
