"""CLI entry point for the ipfs_access layer."""

from __future__ import annotations

import asyncio
import json
import logging
import sys
from collections.abc import AsyncIterator, Awaitable, Callable
from pathlib import Path
from typing import TypeVar

import click

from ipfs_access.config import load_config
from ipfs_access.errors import IpfsAccessError
from ipfs_access.models.config import AccessConfig
from ipfs_access.service import IpfsAccessService

T = TypeVar("T")

READ_CHUNK_SIZE = 256 * 1024


def _run(cfg: AccessConfig, op: Callable[[IpfsAccessService], Awaitable[T]]) -> T:
    """Run ``op`` against a started service; taxonomy errors exit with 1."""

    async def _main() -> T:
        async with IpfsAccessService.from_config(cfg) as service:
            return await op(service)

    try:
        return asyncio.run(_main())
    except IpfsAccessError as exc:
        click.echo(f"Error: {exc.message}", err=True)
        sys.exit(1)


def _echo_value(value: object) -> None:
    if isinstance(value, (dict, list)):
        click.echo(json.dumps(value, indent=2))
    else:
        click.echo(value)


async def _read_file(path: Path) -> AsyncIterator[bytes]:
    with open(path, "rb") as f:
        while chunk := await asyncio.to_thread(f.read, READ_CHUNK_SIZE):
            yield chunk


@click.group()
@click.option("-c", "--config", "config_path", default=None, help="Path to config TOML file")
@click.option("-v", "--verbose", is_flag=True, help="Enable debug logging")
@click.pass_context
def cli(ctx: click.Context, config_path: str | None, verbose: bool) -> None:
    """ipfs-access - read, pin and unpin IPFS content through a node and gateways."""
    ctx.ensure_object(dict)
    cfg = load_config(config_path)
    ctx.obj["cfg"] = cfg

    level = logging.DEBUG if verbose else getattr(logging, cfg.log_level.upper(), logging.INFO)
    logging.basicConfig(
        level=level,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )


# ── Info ───────────────────────────────────────────────


@cli.command("config")
@click.pass_context
def show_config(ctx: click.Context) -> None:
    """Show the effective configuration."""
    cfg: AccessConfig = ctx.obj["cfg"]
    click.echo(f"Node URL:     {cfg.node_url or '(disabled)'}")
    click.echo(f"Gateways:     {', '.join(cfg.gateways_urls) or '(none)'}")
    click.echo(f"Timeouts:     node {cfg.fetch_timeout}s, gateway {cfg.gateway_timeout}s")
    click.echo(f"Image URL:    {cfg.image_gateway_url} (width {cfg.image_width})")
    click.echo(f"Replication:  listen={cfg.replication.enabled} broadcast={cfg.replication.broadcast}")
    click.echo(f"DB path:      {cfg.db_path}")


@cli.command()
@click.pass_context
def status(ctx: click.Context) -> None:
    """Query the IPFS node identity and swarm peers."""
    node_status = _run(ctx.obj["cfg"], lambda s: s.status())
    click.echo(f"ID:         {node_status.id}")
    click.echo(f"Addresses:  {len(node_status.addresses)}")
    for addr in node_status.addresses:
        click.echo(f"  {addr}")
    click.echo(f"Peers:      {len(node_status.peers)}")


# ── Reads ──────────────────────────────────────────────


@cli.command()
@click.argument("cid")
@click.pass_context
def get(ctx: click.Context, cid: str) -> None:
    """Print the content behind CID (node first, gateways as fallback)."""
    _echo_value(_run(ctx.obj["cfg"], lambda s: s.get(cid)))


@cli.command("file")
@click.argument("url")
@click.option("-o", "--output", type=click.Path(dir_okay=False, path_type=Path), default=None,
              help="Write the bytes here instead of only reporting the type")
@click.pass_context
def get_file(ctx: click.Context, url: str, output: Path | None) -> None:
    """Fetch an IPFS URL and detect its file type (gateways first)."""
    result = _run(ctx.obj["cfg"], lambda s: s.get_file(url))
    kind = f"{result.type.mime} (.{result.type.extension})" if result.type else "unknown"
    click.echo(f"Size:  {len(result.data)} bytes")
    click.echo(f"Type:  {kind}")
    if output is not None:
        output.write_bytes(result.data)
        click.echo(f"Saved: {output}")


@cli.command()
@click.argument("encoded_url")
@click.pass_context
def metadata(ctx: click.Context, encoded_url: str) -> None:
    """Resolve base64-encoded metadata URL and its optimized image URL."""
    _echo_value(_run(ctx.obj["cfg"], lambda s: s.get_metadata(encoded_url)))


@cli.command("image-url")
@click.argument("cid")
@click.pass_context
def image_url(ctx: click.Context, cid: str) -> None:
    """Print the optimized gateway URL for an image CID."""
    cfg: AccessConfig = ctx.obj["cfg"]
    service = IpfsAccessService.from_config(cfg)
    try:
        click.echo(service.get_image_url(cid))
    except IpfsAccessError as exc:
        click.echo(f"Error: {exc.message}", err=True)
        sys.exit(1)


# ── Pins ───────────────────────────────────────────────


@cli.command()
@click.argument("content")
@click.option("--owner", required=True, help="Owner identity recorded on the pin")
@click.pass_context
def pin(ctx: click.Context, content: str, owner: str) -> None:
    """Add CONTENT to the node and pin it for OWNER."""
    cid = _run(ctx.obj["cfg"], lambda s: s.pin(content, owner))
    click.echo(f"Pinned: {cid}")


@cli.command()
@click.argument("cid")
@click.option("--owner", required=True, help="Owner identity that created the pin")
@click.pass_context
def unpin(ctx: click.Context, cid: str, owner: str) -> None:
    """Remove OWNER's pin on CID."""
    _run(ctx.obj["cfg"], lambda s: s.unpin(cid, owner))
    click.echo(f"Unpinned: {cid}")


@cli.command()
@click.argument("path", type=click.Path(exists=True, dir_okay=False, path_type=Path))
@click.option("--owner", required=True, help="Owner identity recorded on the pin")
@click.option("--mimetype", default="application/octet-stream", help="MIME type to record")
@click.pass_context
def upload(ctx: click.Context, path: Path, owner: str, mimetype: str) -> None:
    """Stream a file into the node, pin it and record its metadata."""
    size = path.stat().st_size
    cid = _run(
        ctx.obj["cfg"],
        lambda s: s.upload_and_pin(_read_file(path), path.name, mimetype, size, owner),
    )
    click.echo(f"Uploaded {path.name} ({size} bytes): {cid}")


@cli.command()
@click.option("--owner", default=None, help="Only show pins held by this owner")
@click.pass_context
def pins(ctx: click.Context, owner: str | None) -> None:
    """List pin records from the ledger."""
    records = _run(ctx.obj["cfg"], lambda s: s.list_pins(owner))
    if not records:
        click.echo("No pins recorded.")
        return
    for r in records:
        extra = f" {r.metadata.get('filename')}" if r.metadata else ""
        click.echo(f"  {r.cid} owner={r.owner} at={r.timestamp}{extra}")


def main() -> None:
    cli()


if __name__ == "__main__":
    main()
