from __future__ import annotations

import base64
import json

import pytest
from typer.testing import CliRunner

import mnemosyne.cli as cli_module
from mnemosyne.session import build_caches
from mnemosyne.storage import StorageCoordinator


@pytest.fixture
def fake_remote(monkeypatch, tmp_path, remote):
    monkeypatch.setenv("GITHUB_TOKEN", "test-token")
    monkeypatch.chdir(tmp_path)

    async def _fake_open(cls, config, *, token, client=None):
        assert token == "test-token"
        item_cache, asset_cache = build_caches(config)
        storage = StorageCoordinator(
            remote,
            item_cache=item_cache,
            asset_cache=asset_cache,
            repo_name=config.github.repo_name,
            page_size=config.feed.page_size,
        )
        await storage.init()
        return cls(
            remote=remote,
            item_cache=item_cache,
            asset_cache=asset_cache,
            storage=storage,
            user={"login": "octo"},
        )

    monkeypatch.setattr(cli_module.Session, "open", classmethod(_fake_open))
    return remote


def test_cli_help() -> None:
    runner = CliRunner()
    result = runner.invoke(cli_module.app, ["--help"])

    assert result.exit_code == 0
    assert "Usage:" in result.output
    assert "capture" in result.output


def test_cli_init_reports_repository(fake_remote) -> None:
    result = CliRunner().invoke(cli_module.app, ["init"])

    assert result.exit_code == 0
    assert "repository ready owner=octo repo=mnemosyne-db" in result.output
    assert fake_remote.created == ["mnemosyne-db"]
    assert fake_remote.closed is True


def test_cli_capture_then_feed(fake_remote, tmp_path) -> None:
    runner = CliRunner()

    note = runner.invoke(cli_module.app, ["capture", "buy oat milk", "--tag", "errands"])
    link = runner.invoke(cli_module.app, ["capture", "https://example.com/article"])
    feed = runner.invoke(
        cli_module.app,
        ["feed", "--refresh", "--json-out", str(tmp_path / "feed.json")],
    )

    assert note.exit_code == 0
    assert "saved note" in note.output
    assert link.exit_code == 0
    assert "saved link" in link.output
    assert feed.exit_code == 0
    assert "items=2" in feed.output
    assert "https://example.com/article" in feed.output

    payload = json.loads((tmp_path / "feed.json").read_text(encoding="utf-8"))
    assert {entry["type"] for entry in payload} == {"note", "link"}
    assert all("createdAt" in entry for entry in payload)


def test_cli_capture_after_warm_feed_keeps_cached_items(fake_remote) -> None:
    runner = CliRunner()
    for text in ("one", "two", "three"):
        assert runner.invoke(cli_module.app, ["capture", text]).exit_code == 0
    warm = runner.invoke(cli_module.app, ["feed", "--refresh"])

    captured = runner.invoke(cli_module.app, ["capture", "four"])
    fake_remote.files.clear()
    cached = runner.invoke(cli_module.app, ["feed"])

    assert "items=3" in warm.output
    assert captured.exit_code == 0
    assert cached.exit_code == 0
    assert "items=4" in cached.output
    for text in ("one", "two", "three", "four"):
        assert text in cached.output


def test_cli_capture_image_and_download_asset(fake_remote, tmp_path) -> None:
    image = tmp_path / "cat.png"
    image.write_bytes(b"\x89PNG\r\n\x1a\n" + bytes(range(64)))
    runner = CliRunner()

    result = runner.invoke(cli_module.app, ["capture-image", str(image)])

    assert result.exit_code == 0
    asset_path = next(path for path in fake_remote.files if path.startswith("assets/"))
    assert f"image={asset_path}" in result.output

    out = tmp_path / "out" / "cat.png"
    download = runner.invoke(cli_module.app, ["asset", asset_path, "--out", str(out)])

    assert download.exit_code == 0
    assert out.read_bytes() == image.read_bytes()
    assert base64.b64decode(fake_remote.files[asset_path]) == image.read_bytes()


def test_cli_missing_asset_exits_nonzero(fake_remote, tmp_path) -> None:
    result = CliRunner().invoke(
        cli_module.app,
        ["asset", "assets/none.png", "--out", str(tmp_path / "none.png")],
    )

    assert result.exit_code == 1


def test_cli_capture_write_failure_exits_nonzero(fake_remote) -> None:
    fake_remote.fail_writes = True

    result = CliRunner().invoke(cli_module.app, ["capture", "lost thought"])

    assert result.exit_code == 1
    assert fake_remote.files == {}


def test_cli_requires_token(monkeypatch, tmp_path) -> None:
    monkeypatch.delenv("GITHUB_TOKEN", raising=False)
    monkeypatch.chdir(tmp_path)

    result = CliRunner().invoke(cli_module.app, ["feed"])

    assert result.exit_code == 1


def test_cli_cache_clear(monkeypatch, tmp_path) -> None:
    monkeypatch.chdir(tmp_path)
    config_path = tmp_path / "config.json"
    config_path.write_text(
        json.dumps({"cache": {"directory": str(tmp_path / "cache")}}),
        encoding="utf-8",
    )

    result = CliRunner().invoke(cli_module.app, ["cache", "clear", "--config", str(config_path)])

    assert result.exit_code == 0
    assert "cache cleared" in result.output

