"""
Result sinks for the ecosystem regression matrix framework.
"""

from .jsonl_sink import JsonlResultSink

__all__ = [
    'JsonlResultSink',
]
