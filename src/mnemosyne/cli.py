from __future__ import annotations

import asyncio
import base64
import binascii
import json
import logging
from collections.abc import Awaitable, Callable
from pathlib import Path
from typing import TypeVar

import httpx
import typer

from mnemosyne.capture import AssetFile
from mnemosyne.config import AppConfig, load_config
from mnemosyne.schemas import Item
from mnemosyne.session import Session, build_caches, resolve_token

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s %(levelname)s %(name)s %(message)s",
)
logger = logging.getLogger(__name__)

T = TypeVar("T")

app = typer.Typer(help="Mnemosyne CLI")
cache_app = typer.Typer(help="Local cache commands")
app.add_typer(cache_app, name="cache")

_CONFIG_OPTION = typer.Option(
    None,
    "--config",
    help="Config file path (JSON or YAML). Defaults are used when omitted.",
    exists=True,
    dir_okay=False,
    readable=True,
)
_TOKEN_ENV_OPTION = typer.Option(
    None,
    "--token-env",
    help="Environment variable holding the GitHub token (default from config).",
)
_TAG_OPTION = typer.Option(None, "--tag", "-t", help="Tag to attach; repeatable.")


@app.command("init")
def init_repository(
    config_path: Path | None = _CONFIG_OPTION,
    token_env: str | None = _TOKEN_ENV_OPTION,
) -> None:
    """Create the backing repository unless it already exists."""
    config = _load_app_config(config_path)

    async def _noop(session: Session) -> str:
        return str(session.user.get("login", ""))

    login = _run_with_session(config, token_env, _noop)
    typer.echo(f"repository ready owner={login} repo={config.github.repo_name}")


@app.command("capture")
def capture(
    text: str = typer.Argument(..., help="Note text or an http(s) URL."),
    tags: list[str] | None = _TAG_OPTION,
    config_path: Path | None = _CONFIG_OPTION,
    token_env: str | None = _TOKEN_ENV_OPTION,
) -> None:
    """Save a note, or a link when the text is a single URL."""
    config = _load_app_config(config_path)
    item = _run_with_session(
        config,
        token_env,
        lambda session: session.storage.capture_text(text, tags=tags or []),
    )
    typer.echo(f"saved {item.type} id={item.id}")


@app.command("capture-image")
def capture_image(
    path: Path = typer.Argument(
        ...,
        help="Image file to upload.",
        exists=True,
        dir_okay=False,
        readable=True,
    ),
    tags: list[str] | None = _TAG_OPTION,
    config_path: Path | None = _CONFIG_OPTION,
    token_env: str | None = _TOKEN_ENV_OPTION,
) -> None:
    """Upload an image asset, then save an image item referencing it."""
    config = _load_app_config(config_path)
    asset = AssetFile.from_path(path)
    item = _run_with_session(
        config,
        token_env,
        lambda session: session.storage.capture_image(asset, tags=tags or []),
    )
    typer.echo(f"saved {item.type} id={item.id} image={item.image}")


@app.command("feed")
def feed(
    refresh: bool = typer.Option(
        False,
        "--refresh",
        help="Skip the local cache and list the remote repository.",
    ),
    json_out: Path | None = typer.Option(
        None,
        "--json-out",
        help="Optional output path for the feed as JSON.",
    ),
    config_path: Path | None = _CONFIG_OPTION,
    token_env: str | None = _TOKEN_ENV_OPTION,
) -> None:
    """Show the most recent items, newest first."""
    config = _load_app_config(config_path)
    items = _run_with_session(
        config,
        token_env,
        lambda session: session.storage.load_feed(refresh=refresh),
    )

    typer.echo(_render_feed_table(items))
    typer.echo(f"items={len(items)}")

    if json_out is not None:
        json_out.parent.mkdir(parents=True, exist_ok=True)
        payload = [item.model_dump(mode="json", by_alias=True, exclude_none=True) for item in items]
        json_out.write_text(
            json.dumps(payload, ensure_ascii=False, indent=2),
            encoding="utf-8",
        )
        typer.echo(f"json_out={json_out}")


@app.command("asset")
def download_asset(
    asset_path: str = typer.Argument(..., help="Remote asset path, e.g. assets/<id>.png."),
    out: Path = typer.Option(..., "--out", help="Where to write the decoded bytes."),
    config_path: Path | None = _CONFIG_OPTION,
    token_env: str | None = _TOKEN_ENV_OPTION,
) -> None:
    """Fetch an uploaded asset and write its original bytes."""
    config = _load_app_config(config_path)
    encoded = _run_with_session(
        config,
        token_env,
        lambda session: session.storage.get_asset(asset_path),
    )
    if encoded is None:
        typer.echo(f"asset not found: {asset_path}", err=True)
        raise typer.Exit(code=1)

    try:
        data = base64.b64decode(encoded, validate=True)
    except binascii.Error as exc:
        typer.echo(f"asset is not valid base64: {asset_path}", err=True)
        raise typer.Exit(code=1) from exc

    out.parent.mkdir(parents=True, exist_ok=True)
    out.write_bytes(data)
    typer.echo(f"wrote {len(data)} bytes to {out}")


@cache_app.command("clear")
def clear_cache(config_path: Path | None = _CONFIG_OPTION) -> None:
    """Drop the local item and asset caches."""
    config = _load_app_config(config_path)
    item_cache, asset_cache = build_caches(config)
    item_cache.clear()
    asset_cache.clear()
    typer.echo(f"cache cleared directory={config.cache.directory}")


def _load_app_config(config_path: Path | None) -> AppConfig:
    if config_path is None:
        return AppConfig.default()
    try:
        return load_config(config_path)
    except ValueError as exc:
        typer.echo(str(exc), err=True)
        raise typer.Exit(code=1) from exc


def _run_with_session(
    config: AppConfig,
    token_env: str | None,
    action: Callable[[Session], Awaitable[T]],
) -> T:
    async def _runner() -> T:
        token = resolve_token(token_env or config.github.token_env)
        session = await Session.open(config, token=token)
        try:
            return await action(session)
        finally:
            await session.close()

    try:
        return asyncio.run(_runner())
    except ValueError as exc:
        typer.echo(str(exc), err=True)
        raise typer.Exit(code=1) from exc
    except httpx.HTTPError as exc:
        logger.exception("remote request failed")
        typer.echo(f"remote request failed: {exc}", err=True)
        raise typer.Exit(code=1) from exc


def _render_feed_table(items: list[Item]) -> str:
    if not items:
        return "nothing here yet"

    headers = ("created_at", "type", "content")
    rows = [
        (
            item.created_at,
            str(item.type),
            _truncate(item.title or item.content or item.image or "-", limit=80),
        )
        for item in items
    ]

    widths = [
        max(len(headers[column]), *(len(row[column]) for row in rows))
        for column in range(len(headers))
    ]

    def _line(values: tuple[str, str, str]) -> str:
        return " | ".join(
            value.ljust(widths[index]) for index, value in enumerate(values)
        )

    divider = "-+-".join("-" * width for width in widths)
    body = [_line(headers), divider]
    body.extend(_line(row) for row in rows)
    return "\n".join(body)


def _truncate(text: str, *, limit: int) -> str:
    text = " ".join(text.split())
    if len(text) <= limit:
        return text
    return f"{text[: limit - 3]}..."


def main() -> None:
    """CLI entrypoint."""
    app()


if __name__ == "__main__":
    main()
