"""Data models for the Token Gate service."""

from __future__ import annotations

import re
from enum import Enum
from typing import Any, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field


CONNECTION_TOKEN_REGEX = re.compile(r"^[0-9A-Za-z_-]+$")


def is_valid_connection_token(value: str) -> bool:
    """True when ``value`` is usable as a connection token."""
    return bool(CONNECTION_TOKEN_REGEX.fullmatch(value))


# ── Enums ─────────────────────────────────────────────────────────────────────

class ConnectionTokenType(str, Enum):
    NONE = "none"
    MANDATORY = "mandatory"


class TokenPolicyName(str, Enum):
    NONE = "none"
    MANDATORY = "mandatory"
    ARGS = "args"
    ENV = "env"


# ── Connection tokens ─────────────────────────────────────────────────────────

class NoneConnectionToken(BaseModel):
    """Token checking disabled: every request is authorized."""
    model_config = ConfigDict(frozen=True)

    type: Literal[ConnectionTokenType.NONE] = ConnectionTokenType.NONE

    # instance predicate in place of pydantic's deprecated BaseModel.validate classmethod
    def validate(self, connection_token: Any) -> bool:  # type: ignore[override]
        return True


class MandatoryConnectionToken(BaseModel):
    """A secret every request must present, compared exactly."""
    model_config = ConfigDict(frozen=True)

    type: Literal[ConnectionTokenType.MANDATORY] = ConnectionTokenType.MANDATORY
    value: str

    def validate(self, connection_token: Any) -> bool:  # type: ignore[override]
        return isinstance(connection_token, str) and connection_token == self.value


ConnectionToken = Union[NoneConnectionToken, MandatoryConnectionToken]


class ConnectionTokenParseError(BaseModel):
    """Returned (not raised) when no usable connection token can be determined."""
    model_config = ConfigDict(frozen=True)

    message: str


# ── Config ────────────────────────────────────────────────────────────────────

class GateConfig(BaseModel):
    """Runtime configuration."""
    host: str = "127.0.0.1"
    port: int = 8000
    user_data_dir: Optional[str] = Field(
        None, description="Directory holding the persisted token file (null = don't persist)"
    )
    connection_token: Optional[str] = None
    connection_token_file: Optional[str] = None
    without_connection_token: bool = False
    token_policy: TokenPolicyName = TokenPolicyName.NONE
    log_level: str = "info"
