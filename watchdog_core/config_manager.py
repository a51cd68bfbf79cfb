#!/usr/bin/env python3
"""
Configuration Manager for DeFi Watchdog

Loads user settings from ~/.defi-watchdog/config.yaml, with API keys
overridable through environment variables.
"""

import os
import yaml
from pathlib import Path
from typing import Any, Dict, List
from dataclasses import dataclass, asdict, field, fields

from rich.console import Console

from watchdog_core.model_passes import DEFAULT_BASE_URL, DEFAULT_MODELS

DEFAULT_CONFIG_FILE = "~/.defi-watchdog/config.yaml"

# config attribute -> environment variable
ENV_OVERRIDES = {
    "openrouter_api_key": "OPENROUTER_API_KEY",
    "etherscan_api_key": "ETHERSCAN_API_KEY",
    "lineascan_api_key": "LINEASCAN_API_KEY",
    "sonicscan_api_key": "SONICSCAN_API_KEY",
}

SECRET_FIELDS = set(ENV_OVERRIDES)


@dataclass
class WatchdogConfig:
    """Main configuration for DeFi Watchdog."""

    # Model settings
    openrouter_api_key: str = ""
    openrouter_base_url: str = DEFAULT_BASE_URL
    models: List[str] = field(default_factory=lambda: list(DEFAULT_MODELS))
    pass_timeout: float = 90.0
    max_tokens: int = 3000
    temperature: float = 0.1

    # Analysis settings
    similarity_threshold: float = 0.8
    include_static_pass: bool = False

    # Explorer settings
    etherscan_api_key: str = ""
    lineascan_api_key: str = ""
    sonicscan_api_key: str = ""
    default_network: str = "mainnet"


def mask_secret(value: str) -> str:
    if not value:
        return "(not set)"
    if len(value) <= 8:
        return "****"
    return f"{value[:4]}...{value[-4:]}"


def _coerce(current: Any, value: Any) -> Any:
    """Convert a CLI/string value to the type of the current setting."""
    if not isinstance(value, str):
        return value
    if isinstance(current, bool):
        lowered = value.strip().lower()
        if lowered in ("1", "true", "yes", "on"):
            return True
        if lowered in ("0", "false", "no", "off"):
            return False
        raise ValueError(f"Expected a boolean, got '{value}'")
    if isinstance(current, int):
        return int(value)
    if isinstance(current, float):
        return float(value)
    if isinstance(current, list):
        return [item.strip() for item in value.split(",") if item.strip()]
    return value


class ConfigManager:
    """Manages DeFi Watchdog configuration."""

    def __init__(self, config_file: str = DEFAULT_CONFIG_FILE, apply_env: bool = True):
        self.config_file = Path(config_file).expanduser()
        self.console = Console()
        self.config = WatchdogConfig()
        self.apply_env = apply_env
        # values from the file that an environment variable is currently masking
        self._shadowed: Dict[str, Any] = {}

        self.load_config()

    def load_config(self) -> None:
        """Load configuration from file, then apply environment overrides."""
        if self.config_file.exists():
            try:
                with open(self.config_file, 'r') as f:
                    data = yaml.safe_load(f)

                if data:
                    for key, value in data.items():
                        if hasattr(self.config, key):
                            setattr(self.config, key, _coerce(getattr(self.config, key), value))

            except Exception as e:
                self.console.print(f"[yellow]Warning: Could not load config file: {e}[/yellow]")
                self.config = WatchdogConfig()

        if self.apply_env:
            self._apply_env_overrides()

    def _apply_env_overrides(self) -> None:
        for attr, env_var in ENV_OVERRIDES.items():
            value = os.getenv(env_var)
            if value:
                self._shadowed[attr] = getattr(self.config, attr)
                setattr(self.config, attr, value)

    def save_config(self) -> bool:
        """Save current configuration to file."""
        try:
            config_dict = asdict(self.config)
            config_dict.update(self._shadowed)

            self.config_file.parent.mkdir(parents=True, exist_ok=True)
            with open(self.config_file, 'w') as f:
                yaml.dump(config_dict, f, default_flow_style=False, indent=2)

            self.console.print(f"[green]✓ Configuration saved to {self.config_file}[/green]")
            return True

        except Exception as e:
            self.console.print(f"[red]✗ Failed to save config: {e}[/red]")
            return False

    def set_value(self, key: str, value: Any) -> bool:
        """Update one setting (type-coerced) and persist it."""
        if key not in {f.name for f in fields(WatchdogConfig)}:
            self.console.print(f"[red]✗ Unknown setting: {key}[/red]")
            return False
        try:
            coerced = _coerce(getattr(self.config, key), value)
        except ValueError as e:
            self.console.print(f"[red]✗ Invalid value for {key}: {e}[/red]")
            return False

        setattr(self.config, key, coerced)
        self._shadowed.pop(key, None)
        return self.save_config()

    def get_explorer_key(self, network: str) -> str:
        """API key for the explorer serving a network."""
        if network.startswith("linea"):
            # Linea explorers also accept Etherscan keys
            return self.config.lineascan_api_key or self.config.etherscan_api_key
        if network.startswith("sonic"):
            return self.config.sonicscan_api_key
        return self.config.etherscan_api_key

    def show_config(self) -> None:
        """Display current configuration."""
        from rich.table import Table

        table = Table(title="⚙️ DeFi Watchdog Configuration")
        table.add_column("Setting", style="cyan")
        table.add_column("Value", style="green")

        for f in fields(WatchdogConfig):
            value = getattr(self.config, f.name)
            if f.name in SECRET_FIELDS:
                shown = mask_secret(value)
            elif isinstance(value, list):
                shown = ", ".join(value)
            else:
                shown = str(value)
            table.add_row(f.name, shown)

        self.console.print(table)
        self.console.print(f"\n[bold cyan]Config File:[/bold cyan] {self.config_file}")
