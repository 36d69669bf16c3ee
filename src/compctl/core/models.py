from pydantic import BaseModel, ConfigDict, Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class ControlSettings(BaseSettings):
    """
    Control endpoint settings (the 'control' section in compctl.yaml).
    """
    model_config = SettingsConfigDict(env_prefix='COMPCTL_', extra='ignore')

    host: str = "127.0.0.1"
    port: int = Field(default=0, ge=0, le=65535)
    shutdown_grace_seconds: float = Field(default=1.0, ge=0)
    log_level: str = "INFO"


class ClientSettings(BaseModel):
    """
    Client-side call policy (the 'client' section in compctl.yaml).
    """
    model_config = ConfigDict(extra='ignore')

    connect_timeout_seconds: float = Field(default=5.0, gt=0)
    ping_timeout_seconds: float = Field(default=10.0, gt=0)
    ping_payload_size: int = Field(default=8, ge=0, le=4096)


class AppConfig(BaseModel):
    """
    Compositor configuration reloaded on demand (the 'config' section in compctl.yaml).
    """
    model_config = ConfigDict(extra='allow')
