"""Configuration management for netwatch."""

import logging
import os
from pathlib import Path
from typing import Any, Optional

import yaml
from pydantic import BaseModel, Field, ValidationError

logger = logging.getLogger(__name__)


# Default paths
CONFIG_DIR = Path.home() / ".config" / "netwatch"
CONFIG_FILE = CONFIG_DIR / "config.yaml"
LOG_FILE = Path.home() / ".local" / "state" / "netwatch" / "netwatch.log"

NETTOP_COLUMNS_HIDDEN = (
    "time,interface,state,rx_dupe,rx_ooo,re-tx,rtt_avg,rcvsize,"
    "tx_win,tc_class,tc_mgt,cc_algo,P,C,R,W,arch"
)


class ToolsConfig(BaseModel):
    """Command lines for the external reporting tools."""

    nettop: list[str] = Field(
        default_factory=lambda: [
            "/usr/bin/nettop", "-P", "-L", "1",
            "-k", NETTOP_COLUMNS_HIDDEN,
            "-t", "external",
        ]
    )
    lsof: list[str] = Field(default_factory=lambda: ["/usr/sbin/lsof", "-i", "-P", "-n"])
    netstat: list[str] = Field(default_factory=lambda: ["/usr/sbin/netstat", "-ib"])

    def command_for(self, tool: str) -> Optional[list[str]]:
        """Return the argv for a tool identifier, or None if unknown."""
        if tool not in type(self).model_fields:
            return None
        return list(getattr(self, tool))


class PathsConfig(BaseModel):
    """Path configuration."""

    config_dir: Path = CONFIG_DIR
    log_file: Path = LOG_FILE


class NetwatchConfig(BaseModel):
    """Main netwatch configuration."""

    refresh_interval: float = Field(default=3.0, gt=0)
    command_timeout_sec: int = Field(default=10, gt=0)
    loopback_prefix: str = "lo"
    log_level: str = "INFO"
    show_rate_in_header: bool = True
    tools: ToolsConfig = Field(default_factory=ToolsConfig)
    paths: PathsConfig = Field(default_factory=PathsConfig)


def get_config_path() -> Path:
    """Config file location, honouring NETWATCH_CONFIG."""
    override = os.environ.get("NETWATCH_CONFIG")
    return Path(override) if override else CONFIG_FILE


def load_config(path: Optional[Path] = None) -> NetwatchConfig:
    """Load configuration from a YAML file.

    Missing or unreadable files fall back to defaults.

    Args:
        path: Config file (defaults to get_config_path())

    Returns:
        NetwatchConfig object
    """
    path = path or get_config_path()
    config_data: dict = {}

    if path.exists():
        try:
            with open(path, 'r', encoding='utf-8') as f:
                config_data = yaml.safe_load(f) or {}
            logger.debug(f"Config loaded from {path}")
        except (OSError, yaml.YAMLError) as e:
            logger.warning(f"Failed to load YAML config: {e}")
            config_data = {}

    if not isinstance(config_data, dict):
        logger.warning(f"Ignoring config {path}: top level is not a mapping")
        config_data = {}

    try:
        return NetwatchConfig(**config_data)
    except ValidationError as e:
        logger.warning(f"Invalid config in {path}, using defaults: {e}")
        return NetwatchConfig()


def save_config(config: NetwatchConfig, path: Optional[Path] = None) -> None:
    """Save configuration to a YAML file.

    Args:
        config: NetwatchConfig object to save
        path: Config file (defaults to get_config_path())
    """
    path = path or get_config_path()
    path.parent.mkdir(parents=True, exist_ok=True)

    # Paths stay at their defaults
    data = config.model_dump(mode='json', exclude={'paths'})

    with open(path, 'w', encoding='utf-8') as f:
        yaml.dump(data, f, default_flow_style=False, allow_unicode=True)

    logger.info(f"Config saved to {path}")


def get_config_value(key: str, config: Optional[NetwatchConfig] = None) -> Any:
    """Get a specific config value.

    Args:
        key: Dot-notation key like 'tools.lsof'

    Returns:
        Config value
    """
    obj: Any = config or load_config()
    for part in key.split('.'):
        if hasattr(obj, part):
            obj = getattr(obj, part)
        else:
            raise ValueError(f"Unknown config key: {key}")

    return obj


def set_config_value(key: str, value: str, path: Optional[Path] = None) -> NetwatchConfig:
    """Set a specific config value and persist it.

    Args:
        key: Config key
        value: New value (will be type-converted)
        path: Config file (defaults to get_config_path())

    Returns:
        Updated config
    """
    config = load_config(path)
    data = config.model_dump()

    if key == 'refresh_interval':
        data[key] = float(value)
    elif key == 'command_timeout_sec':
        data[key] = int(value)
    elif key == 'log_level':
        data[key] = value.upper()
    elif key == 'loopback_prefix':
        data[key] = value
    elif key == 'show_rate_in_header':
        data[key] = value.lower() in ('1', 'true', 'yes', 'on')
    elif key in ('tools.nettop', 'tools.lsof', 'tools.netstat'):
        data['tools'][key.split('.', 1)[1]] = value.split()
    else:
        raise ValueError(f"Unknown or read-only config key: {key}")

    try:
        new_config = NetwatchConfig(**data)
    except ValidationError as e:
        raise ValueError(f"Invalid value for {key}: {value}") from e

    save_config(new_config, path)
    return new_config


def setup_logging(config: Optional[NetwatchConfig] = None) -> logging.Logger:
    """Configure logging.

    Args:
        config: Optional config object

    Returns:
        Logger instance
    """
    if config is None:
        config = load_config()

    level = getattr(logging, config.log_level.upper(), logging.INFO)

    handlers: list[logging.Handler] = [logging.StreamHandler()]

    file_error: Optional[OSError] = None
    try:
        config.paths.log_file.parent.mkdir(parents=True, exist_ok=True)
        handlers.append(logging.FileHandler(config.paths.log_file, encoding='utf-8'))
    except OSError as e:
        file_error = e  # Console only

    logging.basicConfig(
        level=level,
        format='%(asctime)s [%(levelname)s] %(message)s',
        datefmt='%Y-%m-%d %H:%M:%S',
        handlers=handlers,
        force=True
    )

    if file_error is not None:
        logger.warning(f"Logging to console only, cannot open {config.paths.log_file}: {file_error}")

    return logging.getLogger('netwatch')
