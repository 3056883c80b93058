"""Connection token provisioning.

Runs once at startup to decide which connection token is in effect. A policy
decides whether a token is required at all; when it is, the shared
read-or-generate routine loads the persisted token from the user data dir or
generates a fresh one and tries to store it for the next start.

Persistence is best-effort: read and write failures are swallowed and the
process keeps running with an in-memory token.
"""

from __future__ import annotations

import abc
import asyncio
import logging
import os
import re
import uuid
from pathlib import Path
from typing import Awaitable, Callable, Optional, Union

from tokengate.models.schemas import (
    ConnectionToken,
    ConnectionTokenParseError,
    GateConfig,
    MandatoryConnectionToken,
    NoneConnectionToken,
    TokenPolicyName,
    is_valid_connection_token,
)

logger = logging.getLogger("tokengate.token")

TOKEN_FILE_NAME = "token"
TOKEN_FILE_MODE = 0o600
DEFAULT_TOKEN_ENV_VAR = "TOKENGATE_CONNECTION_TOKEN"

_TRAILING_NEWLINE = re.compile(r"\r?\n$")

DefaultValue = Callable[[], Awaitable[str]]
PolicyResult = Union[ConnectionToken, ConnectionTokenParseError]


def generate_connection_token() -> str:
    return str(uuid.uuid4())


def _strip_newline(contents: str) -> str:
    return _TRAILING_NEWLINE.sub("", contents, count=1)


# ── Storage ───────────────────────────────────────────────────────────────────

def _read_token_file(path: Path) -> str:
    return _strip_newline(path.read_bytes().decode("utf-8"))


def _write_token_file(path: Path, token: str) -> None:
    fd = os.open(path, os.O_WRONLY | os.O_CREAT | os.O_TRUNC, TOKEN_FILE_MODE)
    try:
        f = os.fdopen(fd, "w", encoding="utf-8")
    except BaseException:
        os.close(fd)
        raise
    with f:
        f.write(token)
    # O_CREAT's mode is ignored for a file that already exists
    os.chmod(path, TOKEN_FILE_MODE)


async def read_or_generate_connection_token(user_data_dir: Optional[str]) -> str:
    """Load the persisted token, or generate one and try to persist it."""
    if not user_data_dir:
        # No place to store it
        return generate_connection_token()

    storage = Path(user_data_dir) / TOKEN_FILE_NAME

    try:
        connection_token = await asyncio.to_thread(_read_token_file, storage)
        if is_valid_connection_token(connection_token):
            logger.debug("Loaded connection token from %s", storage)
            return connection_token
        logger.debug("Ignoring malformed connection token in %s", storage)
    except (OSError, UnicodeDecodeError) as e:
        logger.debug("No connection token read from %s: %s", storage, e)

    connection_token = generate_connection_token()

    try:
        await asyncio.to_thread(_write_token_file, storage, connection_token)
        logger.debug("Stored connection token in %s", storage)
    except OSError as e:
        logger.debug("Could not store connection token in %s: %s", storage, e)

    return connection_token


# ── Policies ──────────────────────────────────────────────────────────────────

class ConnectionTokenPolicy(abc.ABC):
    """Decides whether a connection token is required and which one."""

    name: str = ""

    @abc.abstractmethod
    async def decide(self, config: GateConfig, default_value: DefaultValue) -> PolicyResult:
        ...


class NoConnectionTokenPolicy(ConnectionTokenPolicy):
    name = TokenPolicyName.NONE.value

    async def decide(self, config: GateConfig, default_value: DefaultValue) -> PolicyResult:
        return NoneConnectionToken()


class MandatoryConnectionTokenPolicy(ConnectionTokenPolicy):
    name = TokenPolicyName.MANDATORY.value

    async def decide(self, config: GateConfig, default_value: DefaultValue) -> PolicyResult:
        return MandatoryConnectionToken(value=await default_value())


class ArgsConnectionTokenPolicy(ConnectionTokenPolicy):
    """Token from --connection-token / --connection-token-file / --without-connection-token."""

    name = TokenPolicyName.ARGS.value

    async def decide(self, config: GateConfig, default_value: DefaultValue) -> PolicyResult:
        without = config.without_connection_token
        token = config.connection_token
        token_file = config.connection_token_file

        if without:
            if token is not None or token_file is not None:
                return ConnectionTokenParseError(
                    message="Please do not use the argument '--connection-token' or "
                    "'--connection-token-file' at the same time as '--without-connection-token'."
                )
            return NoneConnectionToken()

        if token_file is not None:
            if token is not None:
                return ConnectionTokenParseError(
                    message="Please do not use the argument '--connection-token' at the "
                    "same time as '--connection-token-file'."
                )
            try:
                raw = await asyncio.to_thread(_read_token_file, Path(token_file))
            except (OSError, UnicodeDecodeError):
                return ConnectionTokenParseError(
                    message=f"Unable to read the connection token file at '{token_file}'."
                )
            if not is_valid_connection_token(raw):
                return ConnectionTokenParseError(
                    message=f"The connection token defined in '{token_file}' does not adhere "
                    "to the characters 0-9, a-z, A-Z, _, or -."
                )
            return MandatoryConnectionToken(value=raw)

        if token is not None:
            if not is_valid_connection_token(token):
                return ConnectionTokenParseError(
                    message=f"The connection token '{token}' does not adhere to the "
                    "characters 0-9, a-z, A-Z, _, or -."
                )
            return MandatoryConnectionToken(value=token)

        return MandatoryConnectionToken(value=await default_value())


class EnvConnectionTokenPolicy(ConnectionTokenPolicy):
    name = TokenPolicyName.ENV.value

    def __init__(self, variable: str = DEFAULT_TOKEN_ENV_VAR) -> None:
        self.variable = variable

    async def decide(self, config: GateConfig, default_value: DefaultValue) -> PolicyResult:
        token = os.environ.get(self.variable)
        if not token:
            return MandatoryConnectionToken(value=await default_value())
        if not is_valid_connection_token(token):
            return ConnectionTokenParseError(
                message=f"The connection token in ${self.variable} does not adhere to the "
                "characters 0-9, a-z, A-Z, _, or -."
            )
        return MandatoryConnectionToken(value=token)


POLICIES: dict[str, type[ConnectionTokenPolicy]] = {
    cls.name: cls
    for cls in (
        NoConnectionTokenPolicy,
        MandatoryConnectionTokenPolicy,
        ArgsConnectionTokenPolicy,
        EnvConnectionTokenPolicy,
    )
}


# ── Entry point ───────────────────────────────────────────────────────────────

async def determine_connection_token(
    config: GateConfig,
    policy: Optional[ConnectionTokenPolicy] = None,
) -> PolicyResult:
    """Decide the connection token in effect for this process."""

    async def default_value() -> str:
        return await read_or_generate_connection_token(config.user_data_dir)

    if policy is None:
        policy_name = getattr(config.token_policy, "value", config.token_policy)
        policy_cls = POLICIES.get(policy_name)
        if policy_cls is None:
            return ConnectionTokenParseError(message=f"Unknown connection token policy '{policy_name}'.")
        policy = policy_cls()

    return await policy.decide(config, default_value)
