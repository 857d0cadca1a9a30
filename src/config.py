"""Configuration management for the table purge tool."""

import os
import yaml
from typing import Dict, Any, Optional
from pathlib import Path
from dotenv import load_dotenv

from purge_orchestrator import PurgeOptions

load_dotenv()

DEFAULT_CONFIG_PATH = Path(__file__).parent.parent / "config" / "config.yaml"


class Config:
    """Configuration loader with environment variable support."""

    def __init__(self, config_path: Optional[str] = None):
        explicit = config_path is not None
        if config_path is None:
            config_path = DEFAULT_CONFIG_PATH

        self.config_path = Path(config_path)
        if explicit and not self.config_path.exists():
            raise FileNotFoundError(f"Configuration file not found: {self.config_path}")
        self.config = self._load_config()

    def _load_config(self) -> Dict[str, Any]:
        if self.config_path.exists():
            with open(self.config_path, "r") as f:
                config_text = f.read()
            config_text = os.path.expandvars(config_text)
            return yaml.safe_load(config_text) or {}
        else:
            return {
                "dynamodb": {
                    "table_name": os.getenv("PURGE_TABLE_NAME", ""),
                    "region": os.getenv("AWS_DEFAULT_REGION", "us-east-1"),
                    "profile": os.getenv("AWS_PROFILE"),
                },
                "purge": {
                    "total_segments": int(os.getenv("PURGE_TOTAL_SEGMENTS", "4")),
                    "dry_run": False,
                    "confirm": False,
                    "page_size": 100,
                    "batch_size": 25,
                    "max_retries": 5,
                    "backoff_base_seconds": 0.1,
                    "backoff_cap_seconds": 5.0,
                    "progress_interval_seconds": 2,
                },
                "metrics": {
                    "enable_cloudwatch": False,
                    "namespace": "TablePurge",
                },
                "logging": {
                    "level": os.getenv("LOG_LEVEL", "INFO"),
                    "format": "%(asctime)s - %(name)s - %(levelname)s - %(message)s",
                },
            }

    def get(self, key: str, default: Any = None) -> Any:
        keys = key.split(".")
        value = self.config

        for k in keys:
            if isinstance(value, dict):
                value = value.get(k)
                if value is None:
                    return default
            else:
                return default

        return value

    @property
    def table_name(self) -> str:
        return self.get("dynamodb.table_name", "")

    @property
    def region(self) -> str:
        return self.get("dynamodb.region", "us-east-1")

    @property
    def profile(self) -> Optional[str]:
        return self.get("dynamodb.profile")

    @property
    def total_segments(self) -> int:
        return int(self.get("purge.total_segments", 4))

    @property
    def dry_run(self) -> bool:
        return bool(self.get("purge.dry_run", False))

    @property
    def confirmed(self) -> bool:
        return bool(self.get("purge.confirm", False))

    @property
    def enable_cloudwatch(self) -> bool:
        return bool(self.get("metrics.enable_cloudwatch", False))

    @property
    def metrics_namespace(self) -> str:
        return self.get("metrics.namespace", "TablePurge")

    @property
    def log_level(self) -> str:
        return self.get("logging.level", "INFO")

    def purge_options(self, **overrides) -> PurgeOptions:
        """Build engine options, letting non-None ``overrides`` win."""
        options = {
            "table_name": self.table_name,
            "total_segments": self.total_segments,
            "dry_run": self.dry_run,
            "page_size": int(self.get("purge.page_size", 100)),
            "batch_size": int(self.get("purge.batch_size", 25)),
            "max_retries": int(self.get("purge.max_retries", 5)),
            "backoff_base": float(self.get("purge.backoff_base_seconds", 0.1)),
            "backoff_cap": float(self.get("purge.backoff_cap_seconds", 5.0)),
            "progress_interval": float(self.get("purge.progress_interval_seconds", 2)),
        }
        options.update({k: v for k, v in overrides.items() if v is not None})
        return PurgeOptions(**options)
