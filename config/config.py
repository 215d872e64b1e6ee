"""Configuration management for the application."""

import os
import yaml
from pathlib import Path
from typing import Optional, Any, List
from pydantic import BaseModel, Field
from pydantic_settings import BaseSettings, SettingsConfigDict
from dotenv import load_dotenv

from src.models.reminder import DEFAULT_MESSAGE_ID


# Load environment variables from .env file
load_dotenv()


class WeChatConfig(BaseSettings):
    """WeChat subscribe-message configuration.

    ``WX_APPID`` and ``WX_SECRET`` in the environment fill the credentials
    when the YAML file leaves them empty.
    """
    model_config = SettingsConfigDict(env_prefix="WX_", extra="ignore")

    appid: str = Field(default="", description="Mini program app ID")
    secret: str = Field(default="", description="Mini program app secret")
    api_base_url: str = Field(default="https://api.weixin.qq.com", description="WeChat API base URL")
    page: str = Field(default="pages/index/index", description="Page opened from the notification")
    miniprogram_state: str = Field(default="formal", description="developer, trial or formal")
    lang: str = Field(default="zh_CN", description="Notification language")
    timeout_seconds: float = Field(default=10.0, description="HTTP timeout for WeChat calls")
    token_refresh_margin_seconds: int = Field(default=300, description="Refresh the access token this early")


class SchedulerConfig(BaseModel):
    """Reminder scheduler configuration."""
    enabled: bool = Field(default=True, description="Whether the scheduler starts with the app")
    interval_seconds: int = Field(default=60, gt=0, description="Seconds between ticks")
    concurrency_limit: int = Field(default=5, gt=0, description="Reminders sent concurrently per batch")
    retention_hours: float = Field(default=24, gt=0, description="Age after which failed/cancelled reminders are deleted")


class RemindersConfig(BaseModel):
    """Reminder defaults."""
    default_message_id: str = Field(default=DEFAULT_MESSAGE_ID, description="Default push template ID")
    max_page_size: int = Field(default=100, gt=0, description="Largest page returned by list queries")


class ApiConfig(BaseModel):
    """HTTP server configuration."""
    host: str = Field(default="0.0.0.0", description="Bind address")
    port: int = Field(default=8000, description="Bind port")


class LoggingConfig(BaseModel):
    """Logging configuration."""
    level: str = Field(default="INFO", description="Logging level")


class AppConfig(BaseModel):
    """Application configuration."""
    wechat: WeChatConfig = Field(default_factory=WeChatConfig)
    scheduler: SchedulerConfig = Field(default_factory=SchedulerConfig)
    reminders: RemindersConfig = Field(default_factory=RemindersConfig)
    api: ApiConfig = Field(default_factory=ApiConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)


def expand_env_vars(data: Any) -> Any:
    """Recursively expand environment variables in configuration data.

    Supports ${VAR} and ${VAR:default} syntax.
    """
    if isinstance(data, dict):
        return {key: expand_env_vars(value) for key, value in data.items()}
    elif isinstance(data, list):
        return [expand_env_vars(item) for item in data]
    elif isinstance(data, str):
        if data.startswith("${") and data.endswith("}"):
            var_part = data[2:-1]
            if ":" in var_part:
                var_name, default_value = var_part.split(":", 1)
                return os.getenv(var_name, default_value)
            return os.getenv(var_part, data)
        return data
    else:
        return data


def load_config(config_path: Optional[Path] = None) -> AppConfig:
    """Load configuration from YAML file and environment variables.

    Args:
        config_path: Path to config YAML file. Defaults to config/config.yaml

    Returns:
        AppConfig: Loaded configuration

    Raises:
        FileNotFoundError: If config file doesn't exist
        ValueError: If configuration is invalid
    """
    if config_path is None:
        config_path = Path(__file__).parent / "config.yaml"

    if not config_path.exists():
        raise FileNotFoundError(f"Configuration file not found: {config_path}")

    with open(config_path, 'r', encoding='utf-8') as f:
        config_data = yaml.safe_load(f) or {}

    config_data = expand_env_vars(config_data)

    # Empty strings in YAML must not mask the WX_* environment variables
    wechat_data = {k: v for k, v in (config_data.pop("wechat", None) or {}).items() if v != ""}

    try:
        return AppConfig(wechat=WeChatConfig(**wechat_data), **config_data)
    except Exception as e:
        raise ValueError(f"Invalid configuration: {e}")


def validate_config(config: AppConfig) -> List[str]:
    """Validate that all required configuration values are present and valid.

    Args:
        config: Application configuration

    Returns:
        List of validation error messages (empty if valid)
    """
    errors = []

    if not config.wechat.appid:
        errors.append("WX_APPID is not set")
    if not config.wechat.secret:
        errors.append("WX_SECRET is not set")
    if config.wechat.miniprogram_state not in ("developer", "trial", "formal"):
        errors.append(f"Unknown miniprogram_state: {config.wechat.miniprogram_state}")
    if not config.reminders.default_message_id:
        errors.append("reminders.default_message_id is empty")

    return errors


# Global config instance
_config: Optional[AppConfig] = None


def get_config() -> AppConfig:
    """Get the global configuration instance.

    Raises:
        RuntimeError: If configuration hasn't been loaded
    """
    global _config
    if _config is None:
        raise RuntimeError("Configuration not loaded. Call load_config() first.")
    return _config


def init_config(config_path: Optional[Path] = None) -> AppConfig:
    """Initialize the global configuration."""
    global _config
    _config = load_config(config_path)
    return _config
