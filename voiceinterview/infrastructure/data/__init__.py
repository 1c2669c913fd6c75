"""
Result storage for finished interviews.
"""

from .results import ResultSink, JsonResultStore

__all__ = [
    'ResultSink',
    'JsonResultStore',
]
