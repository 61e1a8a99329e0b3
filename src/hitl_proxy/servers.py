"""Downstream server table.

Each downstream MCP server the proxy can front is described by a
``DownstreamServerConfig``: how to launch it and which of its tools are high
risk or blocked. The table is built once at startup, validated eagerly, and
never mutated afterwards.
"""

import json
from collections.abc import Iterator, Mapping
from pathlib import Path

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from hitl_proxy.config import Settings
from hitl_proxy.exceptions import ConfigurationError
from hitl_proxy.logging import get_logger

logger = get_logger("hitl_proxy.servers")


class DownstreamServerConfig(BaseModel):
    """Launch spec and risk lists for one downstream MCP server."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    command: str = Field(..., min_length=1, description="Executable that starts the server")
    args: tuple[str, ...] = Field(default=(), description="Arguments passed to the command")
    env: dict[str, str] = Field(
        default_factory=dict,
        description="Extra environment for the server process",
    )
    high_risk_tools: tuple[str, ...] = Field(
        default=(),
        description="Tools that require out-of-band approval before running",
    )
    blocked_tools: tuple[str, ...] = Field(
        default=(),
        description="Tools that are never forwarded",
    )

    @field_validator("high_risk_tools", "blocked_tools")
    @classmethod
    def no_duplicates(cls, v: tuple[str, ...]) -> tuple[str, ...]:
        """Drop repeated names while keeping the configured order."""
        return tuple(dict.fromkeys(v))


class ServerRegistry(Mapping[str, DownstreamServerConfig]):
    """Immutable registry of downstream server configs keyed by identifier.

    ``get_config`` raises ``ConfigurationError`` for unknown identifiers
    instead of returning ``None``.
    """

    def __init__(self, servers: Mapping[str, DownstreamServerConfig | dict]):
        """Build and validate the registry.

        Args:
            servers: Mapping of server id to a config or raw config dict

        Raises:
            ConfigurationError: If any entry fails validation
        """
        validated: dict[str, DownstreamServerConfig] = {}
        for server_id, raw in servers.items():
            if not server_id:
                raise ConfigurationError("Server identifier must not be empty")
            if isinstance(raw, DownstreamServerConfig):
                validated[server_id] = raw
                continue
            try:
                validated[server_id] = DownstreamServerConfig.model_validate(raw)
            except ValidationError as e:
                raise ConfigurationError(
                    f"Invalid configuration for server '{server_id}': {e}",
                    server_id=server_id,
                ) from e
        self._servers = validated

    def __getitem__(self, server_id: str) -> DownstreamServerConfig:
        return self._servers[server_id]

    def __iter__(self) -> Iterator[str]:
        return iter(self._servers)

    def __len__(self) -> int:
        return len(self._servers)

    def get_config(self, server_id: str) -> DownstreamServerConfig:
        """Get the config for a server.

        Args:
            server_id: Server identifier

        Returns:
            DownstreamServerConfig: The server's config

        Raises:
            ConfigurationError: If the identifier is not registered
        """
        try:
            return self._servers[server_id]
        except KeyError:
            known = ", ".join(sorted(self._servers)) or "<none>"
            raise ConfigurationError(
                f"Transport config for {server_id} not found. Known servers: {known}",
                server_id=server_id,
            ) from None

    @classmethod
    def from_file(
        cls,
        path: Path,
        base: Mapping[str, DownstreamServerConfig] | None = None,
        default_env: Mapping[str, str] | None = None,
    ) -> "ServerRegistry":
        """Load server entries from a JSON file.

        The file holds an object keyed by server id, each value using the
        ``DownstreamServerConfig`` field names. Entries override ``base``.

        Args:
            path: JSON file to read
            base: Entries to start from
            default_env: Environment merged under each file entry's ``env``

        Returns:
            ServerRegistry: The merged registry

        Raises:
            ConfigurationError: If the file is missing, malformed or invalid
        """
        try:
            data = json.loads(path.read_text(encoding="utf-8"))
        except OSError as e:
            raise ConfigurationError(f"Cannot read servers file {path}: {e}") from e
        except json.JSONDecodeError as e:
            raise ConfigurationError(f"Servers file {path} is not valid JSON: {e}") from e

        if not isinstance(data, dict):
            raise ConfigurationError(f"Servers file {path} must contain a JSON object")

        merged: dict[str, DownstreamServerConfig | dict] = dict(base or {})
        for server_id, entry in data.items():
            if isinstance(entry, dict):
                # null env means no extra variables; other non-objects fail validation
                env = entry.get("env") or {}
                if isinstance(env, dict):
                    entry = {**entry, "env": {**(default_env or {}), **env}}
            merged[server_id] = entry
        logger.debug("Loaded servers file", path=str(path), entries=len(data))
        return cls(merged)

    @classmethod
    def default(cls, settings: Settings) -> "ServerRegistry":
        """Build the registry with the built-in entries plus the servers file.

        Args:
            settings: Settings providing the bearer token and servers file

        Returns:
            ServerRegistry: The startup registry
        """
        bearer_env = {"ACCESS_TOKEN": settings.access_token.get_secret_value()}
        builtin = {
            "todo-mcp-server": DownstreamServerConfig(
                command="/usr/bin/node",
                args=("dist/mcp-server/todo-mcp-server-http.js",),
                env=bearer_env,
                high_risk_tools=("add_todos",),
                blocked_tools=("welcome_to_okta",),
            ),
        }
        if settings.hitl_servers_file is not None:
            return cls.from_file(settings.hitl_servers_file, base=builtin, default_env=bearer_env)
        return cls(builtin)
