"""Token Gate — main entry point.

Usage:
    python -m tokengate.main --token-policy mandatory --user-data-dir ~/.tokengate
    python -m tokengate.main --token-policy args --connection-token my-secret --port 9000
"""

from __future__ import annotations

import argparse
import asyncio
import logging
from typing import NoReturn, Optional, Sequence

import uvicorn
from uvicorn.config import LOG_LEVELS
from fastapi import FastAPI
from rich.console import Console
from rich.panel import Panel

from tokengate import __version__
from tokengate.middleware.auth import set_connection_token
from tokengate.models.schemas import (
    ConnectionToken,
    ConnectionTokenParseError,
    GateConfig,
    MandatoryConnectionToken,
    TokenPolicyName,
)
from tokengate.routers import system
from tokengate.services.token_service import determine_connection_token

logger = logging.getLogger("tokengate.main")


def create_app(config: GateConfig, connection_token: ConnectionToken) -> FastAPI:
    app = FastAPI(
        title="Token Gate",
        description="Service endpoint gated by a shared connection token.",
        version=__version__,
    )

    # ── Auth ──────────────────────────────────────────────────────────────
    set_connection_token(connection_token)

    app.include_router(system.router)

    # Store config and token on app for reference
    app.state.config = config
    app.state.connection_token = connection_token

    return app


def parse_args(argv: Optional[Sequence[str]] = None) -> GateConfig:
    parser = argparse.ArgumentParser(description="Token Gate service")
    parser.add_argument("--host", default="127.0.0.1")
    parser.add_argument("--port", type=int, default=8000)
    parser.add_argument(
        "--user-data-dir",
        default=None,
        help="Directory where a generated connection token is persisted",
    )
    parser.add_argument("--connection-token", default=None)
    parser.add_argument("--connection-token-file", default=None)
    parser.add_argument("--without-connection-token", action="store_true")
    parser.add_argument(
        "--token-policy",
        choices=[p.value for p in TokenPolicyName],
        default=TokenPolicyName.NONE.value,
        help="How the connection token is decided (default: none)",
    )
    parser.add_argument("--log-level", choices=list(LOG_LEVELS), default="info")
    args = parser.parse_args(argv)

    return GateConfig(
        host=args.host,
        port=args.port,
        user_data_dir=args.user_data_dir,
        connection_token=args.connection_token,
        connection_token_file=args.connection_token_file,
        without_connection_token=args.without_connection_token,
        token_policy=args.token_policy,
        log_level=args.log_level,
    )


def _print_banner(config: GateConfig, connection_token: ConnectionToken) -> None:
    url = f"http://{config.host}:{config.port}/"
    if isinstance(connection_token, MandatoryConnectionToken):
        link = f"{url}?tkn={connection_token.value}"
        token_line = f"Token:    {connection_token.value}"
    else:
        link = url
        token_line = "Token:    (not required)"

    Console().print(Panel.fit(
        f"[bold green]Token Gate[/bold green]\n\n"
        f"  HTTP:     {url}\n"
        f"  Link:     [bold]{link}[/bold]\n"
        f"  {token_line}\n"
        f"  Policy:   {config.token_policy.value}",
        title="Gate Ready",
        border_style="blue",
    ))


def _abort(error: ConnectionTokenParseError) -> NoReturn:
    Console(stderr=True).print(f"[bold red]{error.message}[/bold red]")
    raise SystemExit(1)


def main(argv: Optional[Sequence[str]] = None) -> None:
    config = parse_args(argv)
    logging.basicConfig(
        level=getattr(logging, config.log_level.upper(), logging.INFO),
        format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
    )

    connection_token = asyncio.run(determine_connection_token(config))
    if isinstance(connection_token, ConnectionTokenParseError):
        logger.error(f"Cannot determine connection token: {connection_token.message}")
        _abort(connection_token)

    app = create_app(config, connection_token)
    _print_banner(config, connection_token)

    uvicorn.run(app, host=config.host, port=config.port, log_level=config.log_level)


if __name__ == "__main__":
    main()
