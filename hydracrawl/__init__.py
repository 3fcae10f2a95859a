"""
HydraCrawl

Concurrent breadth-first web crawler with adaptive worker concurrency.
"""

__version__ = "1.0.0"
__description__ = "Concurrent breadth-first web crawler with error-driven concurrency control"
