"""
Output sinks for visited URLs.
"""

import asyncio
import logging
from pathlib import Path
from typing import Optional

from ..errors import OutputError


class OutputSink:
    """Abstract base class for visited-URL sinks."""

    async def open(self):
        pass

    async def append_line(self, text: str):
        """Record one line. Must be safe for concurrent callers."""
        raise NotImplementedError

    async def close(self):
        pass


class FileOutputSink(OutputSink):
    """Append-only UTF-8 text file, one URL per line, flushed per line."""

    def __init__(self, path):
        self.path = Path(path)
        self.logger = logging.getLogger(__name__)
        self._file = None
        self._lock = asyncio.Lock()
        self.lines_written = 0

    async def __aenter__(self):
        await self.open()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.close()

    async def open(self):
        if self._file is not None:
            return
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            self._file = open(self.path, 'a', encoding='utf-8')
        except OSError as e:
            raise OutputError(f"Cannot open output file {self.path}: {e}") from e
        self.logger.info(f"Writing visited URLs to {self.path}")

    async def append_line(self, text: str):
        if '\n' in text or '\r' in text:
            raise OutputError(f"Refusing to write multi-line record: {text!r}")
        async with self._lock:
            if self._file is None:
                raise OutputError(f"Output file {self.path} is not open")
            try:
                self._file.write(f"{text}\n")
                self._file.flush()
            except OSError as e:
                raise OutputError(f"Failed to write to {self.path}: {e}") from e
            self.lines_written += 1

    async def close(self):
        async with self._lock:
            if self._file is not None:
                self._file.close()
                self._file = None
                self.logger.info(f"Closed {self.path} after {self.lines_written} lines")


def create_output_sink(config, seed_url: Optional[str] = None) -> FileOutputSink:
    """File sink at config.output.file, or crawled_urls_<host>.txt."""
    return FileOutputSink(config.output.resolve_path(seed_url or config.crawler.seed_url))
