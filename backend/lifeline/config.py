"""
Configuration Management

Centralized configuration loaded from the YAML and JSON files in
backend/config. Each file becomes a top-level section named after the
file, so `dispatch.yaml` is read with `config.get('dispatch.nearbyRadiusKm')`.

Any value can be overridden from the environment with a LIFELINE__
prefixed variable, double underscores separating the key path:

    LIFELINE__STORE__BACKEND=sql
    LIFELINE__TRACKING__INTERVALSECONDS=5
"""

import json
import os
import yaml
from pathlib import Path
from typing import Any, Dict, Mapping, Optional


ENV_PREFIX = "LIFELINE__"


class ConfigManager:
    """
    Manage application configuration from YAML and JSON files

    Provides:
    - Load all config files on startup
    - Environment overrides (LIFELINE__SECTION__KEY)
    - Dot notation access: config.get('tracking.intervalSeconds')
    - Runtime overrides and reload
    """

    def __init__(self, config_dir: Optional[str] = None, environ: Optional[Mapping[str, str]] = None):
        """
        Initialize configuration manager

        Args:
            config_dir: Path to config directory (default: backend/config)
            environ: Environment to read overrides from (default: os.environ)
        """
        if config_dir:
            self.config_dir = Path(config_dir)
        else:
            self.config_dir = Path(__file__).parent.parent / "config"

        self.environ = os.environ if environ is None else environ
        self.configs: Dict[str, Any] = {}
        self._load_all_configs()

    def _load_all_configs(self):
        """Load all configuration files, then apply environment overrides"""
        if not self.config_dir.exists():
            print(f"   [WARN] Config directory not found: {self.config_dir}")
        else:
            for yaml_file in sorted(self.config_dir.glob("*.yaml")):
                try:
                    with open(yaml_file, 'r') as f:
                        self.configs[yaml_file.stem] = yaml.safe_load(f) or {}
                        print(f"   [CONFIG] Loaded: {yaml_file.name}")
                except (OSError, yaml.YAMLError) as e:
                    print(f"   [WARN] Failed to load {yaml_file.name}: {e}")

            for json_file in sorted(self.config_dir.glob("*.json")):
                try:
                    with open(json_file, 'r') as f:
                        self.configs[json_file.stem] = json.load(f)
                        print(f"   [CONFIG] Loaded: {json_file.name}")
                except (OSError, json.JSONDecodeError) as e:
                    print(f"   [WARN] Failed to load {json_file.name}: {e}")

        self._apply_env_overrides()

    def _apply_env_overrides(self):
        for name, raw in self.environ.items():
            if not name.startswith(ENV_PREFIX):
                continue
            path = [p for p in name[len(ENV_PREFIX):].split('__') if p]
            if not path:
                continue
            key = '.'.join(self._match_key(path))
            self.set(key, yaml.safe_load(raw) if raw.strip() else raw)
            print(f"   [CONFIG] Override from environment: {key}")

    def _match_key(self, path):
        """Map upper-cased env path parts onto existing (camelCase) keys"""
        section = self.configs
        keys = []
        for part in path:
            existing = None
            if isinstance(section, dict):
                existing = next((k for k in section if k.lower() == part.lower()), None)
            keys.append(existing or part.lower())
            section = section.get(existing) if existing and isinstance(section, dict) else None
        return keys

    def get(self, key: str, default: Any = None) -> Any:
        """
        Get configuration value by dot notation key

        Examples:
            config.get('dispatch.assumedSpeedKmh')
            config.get('store.retry.attempts', 3)

        Args:
            key: Dot-separated key path
            default: Default value if key not found

        Returns:
            Configuration value or default
        """
        value = self.configs
        for k in key.split('.'):
            if isinstance(value, dict) and k in value:
                value = value[k]
            else:
                return default
        return value

    def reload(self):
        """Reload all configuration files (drops runtime overrides)"""
        print("[CONFIG] Reloading configuration...")
        self.configs.clear()
        self._load_all_configs()
        print("[OK] Configuration reloaded")

    def set(self, key: str, value: Any):
        """
        Set a configuration value (runtime only, not persisted)

        Args:
            key: Dot-separated key path
            value: Value to set
        """
        keys = key.split('.')
        section = self.configs

        for k in keys[:-1]:
            if not isinstance(section.get(k), dict):
                section[k] = {}
            section = section[k]

        section[keys[-1]] = value


# Global configuration instance
config: Optional[ConfigManager] = None


def get_config() -> ConfigManager:
    """Get the global configuration instance"""
    global config
    if config is None:
        config = ConfigManager()
    return config
