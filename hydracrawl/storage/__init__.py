"""
Storage layer: dedup set backends and visited-URL sinks.
"""

from .dedup_gate import DedupGate, MemoryDedupGate, RedisDedupGate, create_dedup_gate
from .output_sink import OutputSink, FileOutputSink, create_output_sink

__all__ = [
    'DedupGate', 'MemoryDedupGate', 'RedisDedupGate', 'create_dedup_gate',
    'OutputSink', 'FileOutputSink', 'create_output_sink'
]
