"""TOML configuration loader for the expiry scanner."""

from __future__ import annotations

import os
import sys
from dataclasses import dataclass, field
from pathlib import Path

if sys.version_info >= (3, 11):
    import tomllib
else:
    try:
        import tomli as tomllib
    except ImportError:
        tomllib = None  # type: ignore[assignment]


@dataclass
class ClaudeConfig:
    api_key: str = ""
    model: str = "claude-sonnet-4-5-20250929"


@dataclass
class GeminiConfig:
    api_key: str = ""
    model: str = "gemini-2.0-flash"


@dataclass
class OpenAIConfig:
    api_key: str = ""
    model: str = "gpt-4o-mini"


@dataclass
class InferenceConfig:
    backend: str = "claude"
    claude: ClaudeConfig = field(default_factory=ClaudeConfig)
    gemini: GeminiConfig = field(default_factory=GeminiConfig)
    openai: OpenAIConfig = field(default_factory=OpenAIConfig)


@dataclass
class CatalogConfig:
    # Empty path disables the catalog tier (every lookup misses).
    db_path: str = ""


@dataclass
class InventoryConfig:
    db_path: str = "~/.config/expiry-scanner/inventory.db"
    user_id: str = ""


@dataclass
class ServerConfig:
    host: str = "127.0.0.1"
    port: int = 8000


@dataclass
class ClientConfig:
    # Empty URL means the CLI resolves codes in-process.
    endpoint_url: str = ""
    api_key: str = ""
    timeout: float = 30.0


@dataclass
class ScannerConfig:
    inference: InferenceConfig = field(default_factory=InferenceConfig)
    catalog: CatalogConfig = field(default_factory=CatalogConfig)
    inventory: InventoryConfig = field(default_factory=InventoryConfig)
    server: ServerConfig = field(default_factory=ServerConfig)
    client: ClientConfig = field(default_factory=ClientConfig)


def load_config(path: str | Path | None = None) -> ScannerConfig:
    """Load configuration from a TOML file.

    Falls back to defaults if no path is given or the file doesn't exist.
    API keys can be overridden via environment variables.
    """
    raw: dict = {}

    if path is not None:
        p = Path(path)
        if p.exists():
            if tomllib is None:
                raise ImportError(
                    "tomli is required on Python < 3.11: pip install tomli"
                )
            with open(p, "rb") as f:
                raw = tomllib.load(f)

    inf = raw.get("inference", {})
    cat = raw.get("catalog", {})
    inv = raw.get("inventory", {})
    srv = raw.get("server", {})
    cli = raw.get("client", {})

    claude_cfg = inf.get("claude", {})
    gemini_cfg = inf.get("gemini", {})
    openai_cfg = inf.get("openai", {})

    # Resolve API keys: config file → environment variable
    claude_api_key = claude_cfg.get("api_key", "") or os.environ.get(
        "ANTHROPIC_API_KEY", ""
    )
    gemini_api_key = gemini_cfg.get("api_key", "") or os.environ.get(
        "GEMINI_API_KEY", ""
    )
    openai_api_key = openai_cfg.get("api_key", "") or os.environ.get(
        "OPENAI_API_KEY", ""
    )

    return ScannerConfig(
        inference=InferenceConfig(
            backend=inf.get("backend", "claude"),
            claude=ClaudeConfig(
                api_key=claude_api_key,
                model=claude_cfg.get("model", "claude-sonnet-4-5-20250929"),
            ),
            gemini=GeminiConfig(
                api_key=gemini_api_key,
                model=gemini_cfg.get("model", "gemini-2.0-flash"),
            ),
            openai=OpenAIConfig(
                api_key=openai_api_key,
                model=openai_cfg.get("model", "gpt-4o-mini"),
            ),
        ),
        catalog=CatalogConfig(
            db_path=cat.get("db_path", ""),
        ),
        inventory=InventoryConfig(
            db_path=inv.get("db_path", "~/.config/expiry-scanner/inventory.db"),
            user_id=inv.get("user_id", ""),
        ),
        server=ServerConfig(
            host=srv.get("host", "127.0.0.1"),
            port=srv.get("port", 8000),
        ),
        client=ClientConfig(
            endpoint_url=cli.get("endpoint_url", ""),
            api_key=cli.get("api_key", ""),
            timeout=cli.get("timeout", 30.0),
        ),
    )
