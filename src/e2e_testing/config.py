"""Configuration management for the e2e-testing suite."""

import os
from pathlib import Path
from typing import Any, Dict, List

RESOURCES_DIR = Path(__file__).parent / "resources"


def _as_bool(value: str) -> bool:
    return value.lower() in ["true", "1", "yes", "on"]


class Config:
    """Configuration manager for the e2e suite with local-stack defaults."""

    def __init__(self, config_dir: str | None = None):
        """Initialize configuration.

        Args:
            config_dir: Optional directory holding compose files and installers.yaml
        """
        if config_dir:
            self.config_dir = Path(config_dir)
        else:
            self.config_dir = RESOURCES_DIR

        self._defaults = {
            # Kibana / Fleet
            "kibana_url": os.environ.get("KIBANA_URL", "http://localhost:5601").rstrip("/"),
            "kibana_username": os.environ.get("KIBANA_USERNAME", "elastic"),
            "kibana_password": os.environ.get("KIBANA_PASSWORD", "changeme"),
            "kibana_xsrf": os.environ.get("KIBANA_XSRF", "e2e-tests"),
            # URL the agent uses from inside the compose network
            "fleet_enroll_url": os.environ.get("FLEET_ENROLL_URL", "http://kibana:5601"),

            # Polling
            "poll_initial_interval": float(os.environ.get("POLL_INITIAL_INTERVAL", "0.5")),
            "poll_max_interval": float(os.environ.get("POLL_MAX_INTERVAL", "5")),
            "poll_multiplier": float(os.environ.get("POLL_MULTIPLIER", "2")),
            "poll_timeout": float(os.environ.get("POLL_TIMEOUT", "60")),

            # Timeouts for single operations
            "http_timeout": float(os.environ.get("HTTP_TIMEOUT", "30")),
            "command_timeout": int(os.environ.get("COMMAND_TIMEOUT", "300")),

            # Fixtures
            "compose_dir": os.environ.get("COMPOSE_DIR", str(self.config_dir / "compose")),
            "installers_file": os.environ.get(
                "INSTALLERS_FILE", str(self.config_dir / "installers.yaml")
            ),
            "stack_version": os.environ.get("STACK_VERSION", "7.8.0"),
            "agent_binary_dir": os.environ.get("AGENT_BINARY_DIR", "/tmp/e2e-testing/dist"),
            "metrics_output_dir": os.environ.get(
                "METRICS_OUTPUT_DIR", "/tmp/e2e-testing/metrics"
            ),

            # Logging
            "log_level": os.environ.get("LOG_LEVEL", "INFO"),
            "log_dir": os.environ.get("LOG_DIR", "/tmp/e2e-testing/logs"),

            "e2e_enabled": _as_bool(os.environ.get("E2E_ENABLED", "false")),
        }

    def __getattr__(self, name: str) -> Any:
        """Get configuration value."""
        if name in self._defaults:
            return self._defaults[name]
        raise AttributeError(f"'{self.__class__.__name__}' object has no attribute '{name}'")

    def __setattr__(self, name: str, value: Any) -> None:
        """Prevent modification of configuration after initialization."""
        try:
            defaults = object.__getattribute__(self, '_defaults')
            if name in defaults:
                raise AttributeError(f"Configuration is immutable: cannot set '{name}'")
        except AttributeError as e:
            if "immutable" in str(e):
                raise
        super().__setattr__(name, value)

    def get(self, key: str, default: Any = None) -> Any:
        """Get configuration value with optional default."""
        return self._defaults.get(key, default)

    def validate(self) -> List[str]:
        """Validate configuration and return list of errors.

        Returns:
            List of validation error messages. Empty list means valid.
        """
        errors = []

        if not self.kibana_url.startswith(("http://", "https://")):
            errors.append(f"KIBANA_URL must be an http(s) URL: {self.kibana_url}")

        if self.poll_initial_interval <= 0:
            errors.append("POLL_INITIAL_INTERVAL must be positive")
        if self.poll_multiplier <= 1:
            errors.append("POLL_MULTIPLIER must be greater than 1")
        if self.poll_max_interval < self.poll_initial_interval:
            errors.append("POLL_MAX_INTERVAL cannot be lower than POLL_INITIAL_INTERVAL")
        if self.poll_timeout < self.poll_initial_interval:
            errors.append("POLL_TIMEOUT is lower than POLL_INITIAL_INTERVAL, no retry can happen")

        if not Path(self.compose_dir).is_dir():
            errors.append(f"Compose directory not found: {self.compose_dir}")
        if not Path(self.installers_file).is_file():
            errors.append(f"Installers file not found: {self.installers_file}")

        metrics_dir = Path(self.metrics_output_dir)
        if not metrics_dir.exists():
            try:
                metrics_dir.mkdir(parents=True, exist_ok=True)
            except OSError as e:
                errors.append(f"Cannot create metrics output directory {metrics_dir}: {e}")

        return errors

    def to_dict(self) -> dict[str, Any]:
        """Convert configuration to dictionary."""
        return self._defaults.copy()

    def __str__(self) -> str:
        return f"Config(config_dir={self.config_dir})"

    def __repr__(self) -> str:
        return f"Config(config_dir={self.config_dir}, kibana_url={self.kibana_url})"

    def get_startup_summary(self) -> Dict[str, Any]:
        """Get startup configuration summary for logging (without secrets).

        Returns:
            Dictionary with key configuration values for startup logging
        """
        return {
            "kibana_url": self.kibana_url,
            "kibana_username": self.kibana_username,
            "fleet_enroll_url": self.fleet_enroll_url,
            "stack_version": self.stack_version,
            "poll_timeout": self.poll_timeout,
            "compose_dir": self.compose_dir,
            "installers_file": self.installers_file,
            "agent_binary_dir": self.agent_binary_dir,
            "metrics_output_dir": self.metrics_output_dir,
            "log_level": self.log_level,
            "e2e_enabled": self.e2e_enabled,
        }
