"""Tests for shell pattern waits and glob file operations."""

import io
import os
from datetime import datetime
from unittest.mock import AsyncMock, MagicMock

import pytest

from avconsole.services.executors import (
    base_path_from_pattern,
    delete_files_by_glob,
    download_files_by_glob,
    list_files_by_glob,
    wait_for_pattern,
)


def scripted_shell(*chunks: str) -> MagicMock:
    """Shell that returns each chunk from one read()."""
    pending = list(chunks)
    shell = MagicMock()
    type(shell).data_available = property(lambda self: bool(pending))
    shell.read = AsyncMock(side_effect=lambda: pending.pop(0))
    return shell


@pytest.fixture
def remote_fs(transport):
    fs = transport.fs
    fs.add_file("program01/app.cpz", b"cpz", datetime(2024, 1, 2, 3, 4, 5))
    fs.add_file("program01/app.sig", b"sig")
    fs.add_file("logs/console.log", b"one")
    fs.add_file("logs/2024/jan.log", b"two")
    fs.add_file("logs/2024/feb/feb.log", b"three")
    fs.add_file("logs/2024/notes.txt", b"four")
    fs.add_file("readme.txt", b"root")
    return fs


@pytest.fixture
def client(file_transfer, remote_fs):
    return file_transfer


class TestWaitForPattern:
    """Polling the shell for command outcome patterns."""

    @pytest.mark.asyncio
    async def test_success_pattern_across_chunks(self) -> None:
        shell = scripted_shell("Loading program...", "\r\nProgram Load ", "Complete\r\n")
        out = io.StringIO()

        result = await wait_for_pattern(shell, ["load complete"], ["error"], timeout=2, out=out)

        assert result.success
        assert result.pattern == "load complete"
        assert out.getvalue() == "Loading program...\r\nProgram Load Complete\r\n"

    @pytest.mark.asyncio
    async def test_failure_patterns_win(self) -> None:
        shell = scripted_shell("ERROR: file not found\r\nDone\r\n")

        result = await wait_for_pattern(shell, ["done"], ["error"], timeout=2, echo=False)

        assert not result
        assert result.pattern == "error"

    @pytest.mark.asyncio
    async def test_timeout_returns_falsy(self) -> None:
        shell = scripted_shell()

        result = await wait_for_pattern(shell, ["done"], timeout=0.2, echo=False)

        assert not result
        assert result.output == ""
        shell.read.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_no_echo(self) -> None:
        shell = scripted_shell("ok\r\n")
        out = io.StringIO()

        assert await wait_for_pattern(shell, ["OK"], echo=False, out=out)
        assert out.getvalue() == ""


class TestListFilesByGlob:
    """Glob listing over the file-transfer channel."""

    @pytest.mark.asyncio
    async def test_non_recursive_lists_one_directory(self, client) -> None:
        files = await list_files_by_glob(client, "program01/*.cpz")

        assert [f.full_name for f in files] == ["program01/app.cpz"]

    @pytest.mark.asyncio
    async def test_non_recursive_skips_directories(self, client) -> None:
        files = await list_files_by_glob(client, "logs/*")

        assert [f.full_name for f in files] == ["logs/console.log"]

    @pytest.mark.asyncio
    async def test_pattern_without_directory_lists_root(self, client) -> None:
        files = await list_files_by_glob(client, "*.txt")

        assert [f.full_name for f in files] == ["readme.txt"]

    @pytest.mark.asyncio
    async def test_recursive_walks_below_base(self, client) -> None:
        files = await list_files_by_glob(client, "logs/**/*.log")

        assert sorted(f.full_name for f in files) == [
            "logs/2024/feb/feb.log",
            "logs/2024/jan.log",
            "logs/console.log",
        ]

    @pytest.mark.asyncio
    async def test_recursive_from_root(self, client) -> None:
        files = await list_files_by_glob(client, "**/*.txt")

        assert sorted(f.full_name for f in files) == ["logs/2024/notes.txt", "readme.txt"]

    @pytest.mark.asyncio
    async def test_recursive_from_absolute_root(self, file_transfer) -> None:
        fs = file_transfer.fs
        fs.dirs.add("/")
        fs.add_file("/var/log/app.log", b"abs")
        fs.add_file("/var/log/app.txt", b"skip")

        files = await list_files_by_glob(file_transfer, "/**/*.log")

        assert [f.full_name for f in files] == ["/var/log/app.log"]

    @pytest.mark.asyncio
    async def test_recursive_skips_unreadable_directories(self, client) -> None:
        original = client.list_directory

        async def guarded(path):
            if path == "logs/2024":
                raise PermissionError(13, "Permission denied", path)
            return await original(path)

        client.list_directory = guarded

        files = await list_files_by_glob(client, "logs/**/*.log")

        assert [f.full_name for f in files] == ["logs/console.log"]

    @pytest.mark.asyncio
    async def test_missing_directory_raises(self, client) -> None:
        with pytest.raises(FileNotFoundError):
            await list_files_by_glob(client, "missing/*.cpz")

    @pytest.mark.asyncio
    async def test_empty_pattern_raises(self, client) -> None:
        with pytest.raises(ValueError):
            await list_files_by_glob(client, "")


class TestDownloadFilesByGlob:
    """Bulk downloads."""

    @pytest.mark.asyncio
    async def test_preserves_structure_below_base(self, client, tmp_path) -> None:
        count = await download_files_by_glob(client, "logs/**/*.log", tmp_path)

        assert count == 3
        assert (tmp_path / "console.log").read_bytes() == b"one"
        assert (tmp_path / "2024" / "jan.log").read_bytes() == b"two"
        assert (tmp_path / "2024" / "feb" / "feb.log").read_bytes() == b"three"

    @pytest.mark.asyncio
    async def test_flattens_when_requested(self, client, tmp_path) -> None:
        count = await download_files_by_glob(
            client, "logs/**/*.log", tmp_path, preserve_structure=False
        )

        assert count == 3
        assert sorted(p.name for p in tmp_path.iterdir()) == [
            "console.log",
            "feb.log",
            "jan.log",
        ]

    @pytest.mark.asyncio
    async def test_sets_local_modified_time(self, client, tmp_path) -> None:
        await download_files_by_glob(client, "program01/*.cpz", tmp_path)

        local = tmp_path / "app.cpz"
        assert os.stat(local).st_mtime == datetime(2024, 1, 2, 3, 4, 5).timestamp()

    @pytest.mark.asyncio
    async def test_creates_destination(self, client, tmp_path) -> None:
        destination = tmp_path / "nested" / "out"

        assert await download_files_by_glob(client, "*.txt", destination) == 1
        assert (destination / "readme.txt").read_bytes() == b"root"

    @pytest.mark.asyncio
    async def test_no_matches(self, client, tmp_path) -> None:
        assert await download_files_by_glob(client, "*.zip", tmp_path) == 0


class TestDeleteFilesByGlob:
    """Bulk deletes."""

    @pytest.mark.asyncio
    async def test_deletes_matches_only(self, client, remote_fs) -> None:
        count = await delete_files_by_glob(client, "program01/app.*")

        assert count == 2
        assert "program01/app.cpz" not in remote_fs.files
        assert "readme.txt" in remote_fs.files

    @pytest.mark.asyncio
    async def test_no_matches(self, client) -> None:
        assert await delete_files_by_glob(client, "program01/*.zip") == 0


def test_base_path_from_pattern() -> None:
    assert base_path_from_pattern("logs/**/*.log") == "logs"
    assert base_path_from_pattern("*.log") == ""
