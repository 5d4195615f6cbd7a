"""Configuration schema using Pydantic."""

from pathlib import Path

from pydantic import BaseModel, Field
from pydantic_settings import BaseSettings, SettingsConfigDict

DEFAULT_API_ENDPOINT = "http://localhost:8000/api/vscode_user_message"


class RemoteConfig(BaseModel):
    """Remote agent endpoint configuration."""
    api_endpoint: str = DEFAULT_API_ENDPOINT
    cancel_endpoint: str = ""  # Derived from api_endpoint when empty
    timeout_seconds: float = 30.0
    headers: dict[str, str] = Field(default_factory=dict)  # e.g. {"Authorization": "Bearer ..."}
    model: str | None = None


class WebhookConfig(BaseModel):
    """Inbound webhook server configuration."""
    enabled: bool = True
    host: str = "0.0.0.0"
    port: int = 3001
    path: str = "/ray-response"


class ExecutionConfig(BaseModel):
    """Command batch execution policy."""
    stop_on_error: bool = False
    dedup_capacity: int = 100
    outbound_dedup_capacity: int = 100
    backup_capacity: int = 50
    mutating_commands: list[str] = Field(default_factory=lambda: ["write", "append", "replace"])


class SessionConfig(BaseModel):
    """Session identity configuration."""
    workspace: str = ""  # Defaults to the current working directory
    project_id: str = ""  # Fixed project id; derived from workspace when empty
    user_id: str = ""  # Pre-configured login; sentinel user when empty
    history_max_sessions: int = 50  # Stored chats per project
    history_max_messages: int = 1000  # Messages kept per chat


class ObservabilityConfig(BaseModel):
    """Metrics event retention."""
    metrics_retention_hours: int = 168
    metrics_max_events: int = 50000  # 0 disables the cap


class PluginsConfig(BaseModel):
    """Command plugin policy."""
    enabled: bool = True
    allow: list[str] = Field(default_factory=list)
    deny: list[str] = Field(default_factory=list)


class Config(BaseSettings):
    """Root configuration for Ray Bridge."""
    remote: RemoteConfig = Field(default_factory=RemoteConfig)
    webhook: WebhookConfig = Field(default_factory=WebhookConfig)
    execution: ExecutionConfig = Field(default_factory=ExecutionConfig)
    session: SessionConfig = Field(default_factory=SessionConfig)
    plugins: PluginsConfig = Field(default_factory=PluginsConfig)
    observability: ObservabilityConfig = Field(default_factory=ObservabilityConfig)

    @property
    def workspace_path(self) -> Path:
        """Get expanded workspace path."""
        raw = (self.session.workspace or "").strip()
        if not raw:
            return Path.cwd()
        return Path(raw).expanduser()

    model_config = SettingsConfigDict(
        env_prefix="RAY_BRIDGE_",
        env_nested_delimiter="__",
    )
