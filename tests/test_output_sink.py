from __future__ import annotations

import asyncio
from types import SimpleNamespace

import pytest

from hydracrawl.errors import OutputError
from hydracrawl.storage.output_sink import FileOutputSink, create_output_sink
from hydracrawl.utils.config import OutputConfig

from conftest import read_lines


class TestFileOutputSink:
    @pytest.mark.asyncio
    async def test_writes_one_line_per_url(self, tmp_path):
        path = tmp_path / "nested" / "out.txt"
        async with FileOutputSink(path) as sink:
            await sink.append_line("https://example.com/")
            await sink.append_line("https://example.com/about")

        assert read_lines(path) == ["https://example.com/", "https://example.com/about"]
        assert sink.lines_written == 2

    @pytest.mark.asyncio
    async def test_concurrent_appends_do_not_interleave(self, tmp_path):
        path = tmp_path / "out.txt"
        urls = [f"https://example.com/{i}" for i in range(200)]
        async with FileOutputSink(path) as sink:
            await asyncio.gather(*(sink.append_line(url) for url in urls))

        assert sorted(read_lines(path)) == sorted(urls)

    @pytest.mark.asyncio
    async def test_appends_to_existing_file(self, tmp_path):
        path = tmp_path / "out.txt"
        path.write_text("https://old.example.com/\n", encoding="utf-8")
        async with FileOutputSink(path) as sink:
            await sink.append_line("https://example.com/")

        assert read_lines(path) == ["https://old.example.com/", "https://example.com/"]

    @pytest.mark.asyncio
    async def test_lines_are_flushed_immediately(self, tmp_path):
        path = tmp_path / "out.txt"
        sink = FileOutputSink(path)
        await sink.open()
        await sink.append_line("https://example.com/")

        assert read_lines(path) == ["https://example.com/"]
        await sink.close()

    @pytest.mark.asyncio
    async def test_rejects_multi_line_records(self, tmp_path):
        async with FileOutputSink(tmp_path / "out.txt") as sink:
            with pytest.raises(OutputError):
                await sink.append_line("https://example.com/\nhttps://evil.example/")

    @pytest.mark.asyncio
    async def test_write_before_open_fails(self, tmp_path):
        with pytest.raises(OutputError):
            await FileOutputSink(tmp_path / "out.txt").append_line("https://example.com/")

    @pytest.mark.asyncio
    async def test_unwritable_path(self, tmp_path):
        blocker = tmp_path / "file"
        blocker.write_text("")
        with pytest.raises(OutputError):
            await FileOutputSink(blocker / "out.txt").open()


def test_create_output_sink_default_name():
    config = SimpleNamespace(output=OutputConfig(), crawler=SimpleNamespace(seed_url="https://Example.com/x"))
    assert create_output_sink(config).path.name == "crawled_urls_example.com.txt"


def test_create_output_sink_explicit_file(tmp_path):
    config = SimpleNamespace(output=OutputConfig(file=str(tmp_path / "urls.txt")),
                             crawler=SimpleNamespace(seed_url="example.com"))
    assert create_output_sink(config).path == tmp_path / "urls.txt"
