"""Configuration loading: TOML file + environment variables."""

from __future__ import annotations

import os
import tomllib
from pathlib import Path

from ipfs_access.models.config import AccessConfig, ReplicationConfig


def load_config(
    config_path: str | Path | None = None,
    env_prefix: str = "IPFS_ACCESS_",
) -> AccessConfig:
    """Load access-layer configuration from a TOML file and env vars.

    Priority (highest wins):
        1. Environment variables (IPFS_ACCESS_NODE_URL, etc.)
        2. TOML config file
        3. Defaults from AccessConfig
    """
    raw: dict = {}
    if config_path is not None:
        p = Path(config_path).expanduser()
        if p.exists():
            with open(p, "rb") as f:
                raw = tomllib.load(f)

    cfg = AccessConfig()

    # ── IPFS node section ──────────────────────────────────
    ipfs = raw.get("ipfs", {})
    if "node_url" in ipfs:
        cfg.node_url = str(ipfs["node_url"])  # "" disables the node source
    if v := ipfs.get("fetch_timeout"):
        cfg.fetch_timeout = float(v)
    if "progress" in ipfs:
        cfg.progress = bool(ipfs["progress"])

    # ── Gateway section ────────────────────────────────────
    gateway = raw.get("gateway", {})
    if "urls" in gateway:
        cfg.gateways_urls = [str(u) for u in gateway["urls"]]
    if v := gateway.get("timeout"):
        cfg.gateway_timeout = float(v)
    if v := gateway.get("image_gateway_url"):
        cfg.image_gateway_url = str(v)
    if v := gateway.get("image_width"):
        cfg.image_width = int(v)

    # ── Replication section ────────────────────────────────
    replication = raw.get("replication", {})
    cfg.replication = ReplicationConfig(
        enabled=replication.get("enabled", True),
        broadcast=replication.get("broadcast", True),
        queue_size=replication.get("queue_size", 1000),
    )

    # ── Storage section ────────────────────────────────────
    storage = raw.get("storage", {})
    if v := storage.get("db_path"):
        cfg.db_path = str(v)

    # ── Logging section ────────────────────────────────────
    logging_raw = raw.get("logging", {})
    if v := logging_raw.get("level"):
        cfg.log_level = str(v)

    # ── Environment variable overrides (highest priority) ──
    if (node := os.environ.get(f"{env_prefix}NODE_URL")) is not None:
        cfg.node_url = node
    if gateways := os.environ.get(f"{env_prefix}GATEWAYS"):
        cfg.gateways_urls = [g.strip() for g in gateways.split(",") if g.strip()]
    if db := os.environ.get(f"{env_prefix}DB_PATH"):
        cfg.db_path = db
    if level := os.environ.get(f"{env_prefix}LOG_LEVEL"):
        cfg.log_level = level

    # Expand ~ in paths
    if cfg.db_path != ":memory:":
        cfg.db_path = str(Path(cfg.db_path).expanduser())

    return cfg
