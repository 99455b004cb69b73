"""Tests for the securexfer CLI."""

import base64
import json
import re
from collections.abc import Iterator
from pathlib import Path
from typing import Any
from unittest.mock import MagicMock, patch

import click
import httpx
import pytest
from click.testing import CliRunner

from securexfer.cli import cli
from securexfer.cli.transfer import name_from_url, parse_headers
from securexfer.transfer import TransferCoordinator

PASSWORD = "test_password"
DATA = bytes(i % 251 for i in range(5000))


@pytest.fixture
def config_dir(tmp_path: Path) -> Iterator[Path]:
    """Point every CLI module at a temporary config directory."""
    directory = tmp_path / "config"
    with (
        patch("securexfer.cli.config.get_config_dir", return_value=directory),
        patch("securexfer.cli.keystore.get_config_dir", return_value=directory),
    ):
        yield directory


@pytest.fixture
def runner() -> CliRunner:
    return CliRunner()


@pytest.fixture
def initialized(runner: CliRunner, config_dir: Path) -> Path:
    result = runner.invoke(cli, ["init"], input=f"{PASSWORD}\n{PASSWORD}\n")
    assert result.exit_code == 0, result.output
    return config_dir


def range_handler(requests: list[httpx.Request]) -> Any:
    def handler(request: httpx.Request) -> httpx.Response:
        requests.append(request)
        if request.method == "HEAD":
            return httpx.Response(200, headers={"Content-Length": str(len(DATA))})
        if request.method == "GET":
            start, end = map(int, re.findall(r"\d+", request.headers["Range"]))
            end = min(end, len(DATA) - 1)
            return httpx.Response(
                206,
                content=DATA[start : end + 1],
                headers={"Content-Range": f"bytes {start}-{end}/{len(DATA)}"},
            )
        request.read()
        return httpx.Response(201)

    return handler


@pytest.fixture
def requests_seen(monkeypatch: pytest.MonkeyPatch) -> list[httpx.Request]:
    """Route the CLI's coordinators to an in-memory server."""
    requests: list[httpx.Request] = []

    def make(codec: Any = None) -> TransferCoordinator:
        return TransferCoordinator(
            codec=codec,
            network_check=lambda url: True,
            transport=httpx.MockTransport(range_handler(requests)),
        )

    monkeypatch.setattr("securexfer.cli.transfer.TransferCoordinator", make)
    return requests


class TestInit:
    """Tests for the init command."""

    def test_init_creates_keystore(self, runner: CliRunner, config_dir: Path) -> None:
        result = runner.invoke(cli, ["init"], input=f"{PASSWORD}\n{PASSWORD}\n")

        assert result.exit_code == 0
        assert "securexfer initialized successfully!" in result.output
        assert "Key ID:" in result.output
        assert (config_dir / "keyfile.json").exists()

    def test_init_already_initialized(self, runner: CliRunner, initialized: Path) -> None:
        result = runner.invoke(cli, ["init"], input=f"{PASSWORD}\n{PASSWORD}\n")

        assert result.exit_code == 1
        assert "already initialized" in result.output

    def test_init_password_mismatch_reprompts(self, runner: CliRunner, config_dir: Path) -> None:
        result = runner.invoke(cli, ["init"], input=f"{PASSWORD}\nother\n{PASSWORD}\n{PASSWORD}\n")

        assert result.exit_code == 0
        assert (config_dir / "keyfile.json").exists()


class TestKeyCommands:
    """Tests for export-key and import-key."""

    def test_export_key(self, runner: CliRunner, initialized: Path) -> None:
        result = runner.invoke(cli, ["export-key"], input=f"{PASSWORD}\n")

        assert result.exit_code == 0
        assert "Transfer key (keep secret!):" in result.output
        key = result.output.strip().splitlines()[-1]
        assert len(base64.b64decode(key)) == 32

    def test_export_key_wrong_password(self, runner: CliRunner, initialized: Path) -> None:
        result = runner.invoke(cli, ["export-key"], input="wrong\n")

        assert result.exit_code == 1
        assert "Invalid password" in result.output

    def test_export_key_not_initialized(self, runner: CliRunner, config_dir: Path) -> None:
        result = runner.invoke(cli, ["export-key"])

        assert result.exit_code == 1
        assert "not initialized" in result.output

    def test_import_key(self, runner: CliRunner, initialized: Path) -> None:
        key = base64.b64encode(bytes(range(32))).decode()

        result = runner.invoke(cli, ["import-key", key], input=f"{PASSWORD}\n")
        assert result.exit_code == 0
        assert "Transfer key imported successfully!" in result.output

        exported = runner.invoke(cli, ["export-key"], input=f"{PASSWORD}\n")
        assert exported.output.strip().splitlines()[-1] == key

    def test_import_key_invalid(self, runner: CliRunner, initialized: Path) -> None:
        result = runner.invoke(cli, ["import-key", "short"], input=f"{PASSWORD}\n")

        assert result.exit_code == 1
        assert "Error:" in result.output


class TestConfigCommands:
    """Tests for config show/set."""

    def test_show_defaults(self, runner: CliRunner, config_dir: Path) -> None:
        result = runner.invoke(cli, ["config", "show"])

        assert result.exit_code == 0
        assert "concurrency = 4 (default)" in result.output
        assert "upload_method = POST (default)" in result.output

    def test_set_and_show(self, runner: CliRunner, config_dir: Path) -> None:
        result = runner.invoke(cli, ["config", "set", "concurrency", "8"])
        assert result.exit_code == 0

        stored = json.loads((config_dir / "config.json").read_text())
        assert stored["concurrency"] == "8"
        assert "concurrency = 8\n" in runner.invoke(cli, ["config", "show"]).output

    def test_set_normalizes_method(self, runner: CliRunner, config_dir: Path) -> None:
        result = runner.invoke(cli, ["config", "set", "upload_method", "put"])

        assert result.exit_code == 0
        assert "upload_method = PUT" in result.output

    @pytest.mark.parametrize(
        ("name", "value"),
        [("concurrency", "0"), ("chunk_size", "abc"), ("colour", "blue")],
    )
    def test_set_invalid(self, runner: CliRunner, config_dir: Path, name: str, value: str) -> None:
        result = runner.invoke(cli, ["config", "set", name, value])

        assert result.exit_code == 1
        assert "Error:" in result.output
        assert not (config_dir / "config.json").exists()


class TestDownload:
    """Tests for the download command."""

    def test_download(
        self,
        runner: CliRunner,
        initialized: Path,
        requests_seen: list[httpx.Request],
        tmp_path: Path,
    ) -> None:
        dest = tmp_path / "out"
        result = runner.invoke(
            cli,
            [
                "download",
                "https://files.test/data/report.bin",
                "--dest",
                str(dest),
                "--chunk-size",
                "1024",
                "--no-progress",
                "-H",
                "Authorization: Bearer abc",
            ],
            input=f"{PASSWORD}\n",
        )

        assert result.exit_code == 0, result.output
        assert "Done:" in result.output
        assert (dest / "report.bin").read_bytes() == DATA

        gets = [r for r in requests_seen if r.method == "GET"]
        assert len(gets) == 5
        assert all(r.headers["Authorization"] == "Bearer abc" for r in gets)

    def test_download_with_progress_bar(
        self,
        runner: CliRunner,
        initialized: Path,
        requests_seen: list[httpx.Request],
        tmp_path: Path,
    ) -> None:
        result = runner.invoke(
            cli,
            ["download", "https://files.test/f.bin", "-d", str(tmp_path), "-n", "named.bin"],
            input=f"{PASSWORD}\n",
        )

        assert result.exit_code == 0, result.output
        assert (tmp_path / "named.bin").read_bytes() == DATA

    def test_download_not_initialized(
        self, runner: CliRunner, config_dir: Path, requests_seen: list[httpx.Request], tmp_path: Path
    ) -> None:
        result = runner.invoke(cli, ["download", "https://files.test/f.bin", "-d", str(tmp_path)])

        assert result.exit_code == 1
        assert "not initialized" in result.output
        assert requests_seen == []

    def test_download_bad_header(self, runner: CliRunner, initialized: Path) -> None:
        result = runner.invoke(cli, ["download", "https://files.test/f.bin", "-H", "no-colon"])

        assert result.exit_code == 2
        assert "Name: value" in result.output


class TestUpload:
    """Tests for the upload command."""

    def test_upload(
        self, runner: CliRunner, config_dir: Path, requests_seen: list[httpx.Request], tmp_path: Path
    ) -> None:
        source = tmp_path / "src.bin"
        source.write_bytes(DATA)

        result = runner.invoke(
            cli,
            [
                "upload",
                str(source),
                "https://files.test/upload",
                "--chunk-size",
                "2048",
                "-X",
                "put",
                "--no-progress",
            ],
        )

        assert result.exit_code == 0, result.output
        puts = [r for r in requests_seen if r.method == "PUT"]
        assert sorted(r.headers["Content-Range"] for r in puts) == [
            "bytes 0-2047/5000",
            "bytes 2048-4095/5000",
            "bytes 4096-4999/5000",
        ]

    def test_upload_missing_file(self, runner: CliRunner, config_dir: Path, tmp_path: Path) -> None:
        result = runner.invoke(cli, ["upload", str(tmp_path / "missing"), "https://files.test/u"])

        assert result.exit_code == 2


class TestHelpers:
    """Tests for option parsing helpers."""

    def test_parse_headers(self) -> None:
        assert parse_headers(("X-A: 1", "X-B:two words ")) == {"X-A": "1", "X-B": "two words"}

    def test_parse_headers_invalid(self) -> None:
        with pytest.raises(click.BadParameter):
            parse_headers((": value",))

    def test_name_from_url(self) -> None:
        assert name_from_url("https://h/a/my%20file.txt?x=1") == "my file.txt"

    def test_name_from_url_empty(self) -> None:
        with pytest.raises(click.BadParameter):
            name_from_url("https://h/")

    def test_version(self, runner: CliRunner) -> None:
        result = runner.invoke(cli, ["--version"])
        assert result.exit_code == 0
        assert "0.1.0" in result.output


class TestKeyCache:
    """Tests for unlock, lock and use of the cached key."""

    def test_unlock_caches_key(
        self, runner: CliRunner, initialized: Path, mock_keyring: MagicMock
    ) -> None:
        mock_keyring.reset_mock()

        result = runner.invoke(cli, ["unlock"], input=f"{PASSWORD}\n")

        assert result.exit_code == 0
        assert "Keystore unlocked successfully!" in result.output
        mock_keyring.set_password.assert_called_once()

    def test_download_uses_cached_key(
        self,
        runner: CliRunner,
        initialized: Path,
        mock_keyring: MagicMock,
        requests_seen: list[httpx.Request],
        tmp_path: Path,
    ) -> None:
        """With a cached key, download runs without prompting."""
        mock_keyring.get_password.return_value = mock_keyring.set_password.call_args.args[2]

        result = runner.invoke(
            cli, ["download", "https://files.test/f.bin", "-d", str(tmp_path), "--no-progress"]
        )

        assert result.exit_code == 0, result.output
        assert "Enter master password" not in result.output
        assert (tmp_path / "f.bin").read_bytes() == DATA

    def test_export_key_always_prompts(
        self, runner: CliRunner, initialized: Path, mock_keyring: MagicMock
    ) -> None:
        """Exporting the key needs the password even when a key is cached."""
        mock_keyring.get_password.return_value = mock_keyring.set_password.call_args.args[2]

        result = runner.invoke(cli, ["export-key"], input="wrong\n")

        assert result.exit_code == 1
        assert "Invalid password" in result.output

    def test_lock_removes_cached_key(
        self, runner: CliRunner, initialized: Path, mock_keyring: MagicMock
    ) -> None:
        key_id = json.loads((initialized / "keyfile.json").read_text())["key_id"]

        result = runner.invoke(cli, ["lock"])

        assert result.exit_code == 0
        assert "Keystore locked." in result.output
        mock_keyring.delete_password.assert_called_once_with("securexfer", key_id)

    def test_lock_not_initialized(self, runner: CliRunner, config_dir: Path) -> None:
        result = runner.invoke(cli, ["lock"])

        assert result.exit_code == 1
        assert "not initialized" in result.output
