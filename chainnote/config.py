"""
Runtime configuration.

All options come from environment variables (or a ``.env`` file in the
working directory) through pydantic-settings. The network selector is
resolved once into a :class:`NetworkProfile` so that the mosaic id and
explorer URL are never re-derived inline.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Literal, Optional

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

from chainnote.errors import ConfigurationError

# Symbol's hard cap on a transfer message, marker byte included.
LEDGER_MESSAGE_CAP = 1024

# Default budget for the JSON note (the marker byte takes the last slot).
DEFAULT_MESSAGE_MAX_BYTES = LEDGER_MESSAGE_CAP - 1

LINE_REPLY_ENDPOINT = "https://api.line.me/v2/bot/message/reply"


# =========================================================================
# Network profiles
# =========================================================================


@dataclass(frozen=True)
class NetworkProfile:
    """Constants that depend on the network selector.

    Attributes:
        name: Selector value ("testnet" or "mainnet"), also the SDK
            network name.
        currency_mosaic_id: Id of the native XYM mosaic on this network.
        explorer_base_url: Base URL of the transaction viewer.
    """

    name: str
    currency_mosaic_id: int
    explorer_base_url: str

    def explorer_url(self, tx_hash: str) -> str:
        return f"{self.explorer_base_url}/transactions/{tx_hash}"


NETWORKS: dict[str, NetworkProfile] = {
    "testnet": NetworkProfile(
        name="testnet",
        currency_mosaic_id=0x72C0212E67A08BCE,
        explorer_base_url="https://testnet.symbol.fyi",
    ),
    "mainnet": NetworkProfile(
        name="mainnet",
        currency_mosaic_id=0x6BED913FA20223F8,
        explorer_base_url="https://symbol.fyi",
    ),
}


def resolve_network(name: str) -> NetworkProfile:
    """Look up the profile for a network selector.

    Raises:
        ConfigurationError: If the selector is unknown.
    """
    try:
        return NETWORKS[name.lower()]
    except KeyError:
        raise ConfigurationError(
            f"unknown network type: {name!r}",
            details={"allowed": sorted(NETWORKS)},
        ) from None


# =========================================================================
# Settings
# =========================================================================


_REQUIRED = (
    ("node_url", "NODE_URL"),
    ("line_channel_secret", "LINE_CHANNEL_SECRET"),
    ("line_access_token", "LINE_ACCESS_TOKEN"),
    ("symbol_private_key", "SYMBOL_PRIVATE_KEY"),
)


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    app_name: str = "chainnote"
    log_level: str = Field(default="INFO", json_schema_extra={"env": "LOG_LEVEL"})

    network_type: Literal["testnet", "mainnet"] = Field(
        default="testnet", json_schema_extra={"env": "NETWORK_TYPE"}
    )
    node_url: Optional[str] = Field(
        default=None, json_schema_extra={"env": "NODE_URL"}
    )

    # Secrets are kept out of repr() so they never reach a log line.
    line_channel_secret: Optional[str] = Field(
        default=None, repr=False, json_schema_extra={"env": "LINE_CHANNEL_SECRET"}
    )
    line_access_token: Optional[str] = Field(
        default=None, repr=False, json_schema_extra={"env": "LINE_ACCESS_TOKEN"}
    )
    symbol_private_key: Optional[str] = Field(
        default=None, repr=False, json_schema_extra={"env": "SYMBOL_PRIVATE_KEY"}
    )

    recipient_address: Optional[str] = Field(
        default=None, json_schema_extra={"env": "RECIPIENT_ADDRESS"}
    )
    fee_multiplier: int = Field(
        default=100, gt=0, json_schema_extra={"env": "FEE_MULTIPLIER"}
    )
    deadline_hours: float = Field(
        default=2.0, gt=0, json_schema_extra={"env": "DEADLINE_HOURS"}
    )
    announce_timeout: float = Field(
        default=8.0, gt=0, json_schema_extra={"env": "ANNOUNCE_TIMEOUT"}
    )
    reply_timeout: float = Field(
        default=5.0, gt=0, json_schema_extra={"env": "REPLY_TIMEOUT"}
    )
    message_max_bytes: int = Field(
        default=DEFAULT_MESSAGE_MAX_BYTES,
        ge=1,
        le=DEFAULT_MESSAGE_MAX_BYTES,
        json_schema_extra={"env": "MESSAGE_MAX_BYTES"},
    )
    location_ttl_seconds: float = Field(
        default=600.0, gt=0, json_schema_extra={"env": "LOCATION_TTL_SECONDS"}
    )
    line_reply_endpoint: str = Field(
        default=LINE_REPLY_ENDPOINT, json_schema_extra={"env": "LINE_REPLY_ENDPOINT"}
    )

    @property
    def network(self) -> NetworkProfile:
        return resolve_network(self.network_type)

    def missing_required(self) -> list[str]:
        """Names of required environment variables that are unset."""
        return [env for attr, env in _REQUIRED if not getattr(self, attr)]

    def require(self) -> None:
        """Raise ConfigurationError if any required option is missing.

        The error names the variables, never their values.
        """
        missing = self.missing_required()
        if missing:
            raise ConfigurationError(
                "Missing env: " + ", ".join(missing),
                details={"missing": missing},
            )


def get_settings() -> Settings:
    """Load settings from the environment."""
    return Settings()
