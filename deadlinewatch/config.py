"""
Configuration management for Deadlinewatch.
"""

import os
import copy
import json
import yaml
import toml
from pathlib import Path
from typing import Dict, Any, Optional, List
from pydantic import BaseModel, Field

from .constants import CONFIG_FILES, DEFAULT_CONFIG, RISK_AXES
from .utils import logger, merge_dicts


class PredictionSettings(BaseModel):
    """Prediction engine configuration."""
    confidence_threshold: float = Field(default=0.7)
    max_history_days: int = Field(default=365)
    working_hours_per_day: float = Field(default=8.0)
    skill_increment: float = Field(default=0.1)
    skill_cap: Optional[float] = None
    quality_history_limit: int = Field(default=100)
    default_method: str = Field(default="ensemble")
    cache_expiry: int = Field(default=300)


class MonitoringSettings(BaseModel):
    """Risk monitoring configuration."""
    monitoring_interval: float = Field(default=60)
    alert_cooldown: float = Field(default=300)
    snapshot_retention_days: int = Field(default=30)
    max_workers: int = Field(default=1)
    risk_thresholds: Dict[str, float] = Field(
        default_factory=lambda: dict(DEFAULT_CONFIG['monitoring']['risk_thresholds'])
    )
    check_intervals: Dict[str, float] = Field(
        default_factory=lambda: dict(DEFAULT_CONFIG['monitoring']['check_intervals'])
    )


class AlertSettings(BaseModel):
    """Alert delivery configuration."""
    channels: List[str] = Field(default_factory=lambda: ['log'])
    alert_file: Optional[str] = None
    webhook_url: Optional[str] = None


class LoggingConfig(BaseModel):
    """Logging configuration."""
    level: str = Field(default="INFO")


class DeadlinewatchConfig(BaseModel):
    """Main configuration model."""
    prediction: PredictionSettings = Field(default_factory=PredictionSettings)
    monitoring: MonitoringSettings = Field(default_factory=MonitoringSettings)
    alerts: AlertSettings = Field(default_factory=AlertSettings)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)


class Config:
    """Configuration manager for Deadlinewatch."""

    def __init__(self, config_file: Optional[str] = None):
        self.config_file = config_file
        self.config_data = self._load_config()
        self.config = DeadlinewatchConfig(**self.config_data)
        self._apply_environment_overrides()

    def _find_config_file(self) -> Optional[Path]:
        """Find configuration file in current directory or parent directories."""
        current_dir = Path.cwd()

        for parent in [current_dir] + list(current_dir.parents):
            for config_name in CONFIG_FILES:
                config_path = parent / config_name
                if config_path.exists():
                    logger.debug(f"Found config file: {config_path}")
                    return config_path

        return None

    def _load_config(self) -> Dict[str, Any]:
        """Load configuration from file."""
        config = copy.deepcopy(DEFAULT_CONFIG)

        if self.config_file:
            config_path = Path(self.config_file)
        else:
            config_path = self._find_config_file()

        if not config_path or not config_path.exists():
            logger.debug("No config file found, using defaults")
            return config

        try:
            if config_path.suffix in ['.yaml', '.yml']:
                with open(config_path, 'r') as f:
                    file_config = yaml.safe_load(f) or {}
            elif config_path.suffix == '.toml':
                with open(config_path, 'r') as f:
                    file_config = toml.load(f)
            elif config_path.suffix == '.json':
                with open(config_path, 'r') as f:
                    file_config = json.load(f)
            else:
                logger.warning(f"Unknown config file format: {config_path}")
                return config

            config = merge_dicts(config, file_config)
            logger.info(f"Loaded config from: {config_path}")

        except Exception as e:
            logger.error(f"Error loading config file: {e}")

        return config

    def _apply_environment_overrides(self):
        """Apply environment variable overrides to configuration."""
        log_level = os.getenv('DEADLINEWATCH_LOG_LEVEL')
        if log_level:
            self.config.logging.level = log_level

        interval = os.getenv('DEADLINEWATCH_MONITORING_INTERVAL')
        if interval:
            self.config.monitoring.monitoring_interval = float(interval)

        cooldown = os.getenv('DEADLINEWATCH_ALERT_COOLDOWN')
        if cooldown:
            self.config.monitoring.alert_cooldown = float(cooldown)

    def get(self, key: str, default: Any = None) -> Any:
        """Get configuration value by dot-notation key."""
        keys = key.split('.')
        value = self.config_data

        try:
            for k in keys:
                value = value[k]
            return value
        except (KeyError, TypeError):
            return default

    def set(self, key: str, value: Any):
        """Set configuration value by dot-notation key."""
        keys = key.split('.')
        config_dict = self.config_data

        for k in keys[:-1]:
            if k not in config_dict:
                config_dict[k] = {}
            config_dict = config_dict[k]

        config_dict[keys[-1]] = value

        # Recreate config object, environment still wins over file values
        self.config = DeadlinewatchConfig(**self.config_data)
        self._apply_environment_overrides()

    def save(self, path: Optional[str] = None):
        """Save configuration to file."""
        if path:
            save_path = Path(path)
        else:
            save_path = Path(self.config_file or '.deadlinewatch.yaml')

        if save_path.suffix in ['.yaml', '.yml']:
            with open(save_path, 'w') as f:
                yaml.dump(self.config_data, f, default_flow_style=False)
        elif save_path.suffix == '.toml':
            with open(save_path, 'w') as f:
                toml.dump(self.config_data, f)
        elif save_path.suffix == '.json':
            with open(save_path, 'w') as f:
                json.dump(self.config_data, f, indent=2)
        else:
            save_path = save_path.with_suffix('.yaml')
            with open(save_path, 'w') as f:
                yaml.dump(self.config_data, f, default_flow_style=False)

        logger.info(f"Configuration saved to: {save_path}")

    def validate(self) -> bool:
        """Validate configuration."""
        try:
            config = DeadlinewatchConfig(**self.config_data)
        except Exception as e:
            logger.error(f"Configuration validation failed: {e}")
            return False

        unknown = set(config.monitoring.risk_thresholds) - set(RISK_AXES)
        if unknown:
            logger.error(f"Unknown risk axes in thresholds: {', '.join(sorted(unknown))}")
            return False

        return True

    @property
    def prediction(self) -> PredictionSettings:
        return self.config.prediction

    @property
    def monitoring(self) -> MonitoringSettings:
        return self.config.monitoring

    @property
    def alerts(self) -> AlertSettings:
        return self.config.alerts
