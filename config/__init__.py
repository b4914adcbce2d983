"""Configuration management."""
import os
import yaml
from pathlib import Path

_config = None
_DEFAULT_CONFIG = Path(__file__).parent / "default_config.yaml"

ENV_OVERRIDES = {
    "PMONITOR_DB_PATH": ("database", "path"),
    "PMONITOR_LOG_LEVEL": ("logging", "level"),
    "PMONITOR_WEBHOOK_URL": ("webhook", "url"),
    "PMONITOR_ADMIN_EMAIL": ("email", "to_address"),
    "PMONITOR_CORRELATION_INTERVAL": ("monitoring", "correlation_interval"),
}


def load_config(path=None):
    """Load config from YAML, merging defaults with optional overrides."""
    global _config

    with open(_DEFAULT_CONFIG) as f:
        config = yaml.safe_load(f)

    if path and Path(path).exists():
        with open(path) as f:
            overrides = yaml.safe_load(f) or {}
        config = _deep_merge(config, overrides)

    for env_key, config_path in ENV_OVERRIDES.items():
        val = os.environ.get(env_key)
        if val:
            d = config
            for k in config_path[:-1]:
                d = d.setdefault(k, {})
            try:
                d[config_path[-1]] = int(val)
            except ValueError:
                d[config_path[-1]] = val

    _validate_config(config)
    _config = config
    return config


def get_config():
    """Return cached config, loading defaults if needed."""
    global _config
    if _config is None:
        _config = load_config()
    return _config


def _deep_merge(base, override):
    """Recursively merge override into base dict."""
    result = base.copy()
    for key, val in override.items():
        if key in result and isinstance(result[key], dict) and isinstance(val, dict):
            result[key] = _deep_merge(result[key], val)
        else:
            result[key] = val
    return result


def _validate_config(config):
    required_sections = ["monitoring", "alerts", "database", "logging"]
    for section in required_sections:
        if section not in config:
            raise ValueError(f"Missing required config section: {section}")

    if config["monitoring"].get("correlation_interval", 60) <= 0:
        raise ValueError("correlation_interval must be > 0 seconds")
    if config["monitoring"].get("history_size", 1000) <= 0:
        raise ValueError("history_size must be > 0")
    if config["alerts"].get("throttle_window_minutes", 15) <= 0:
        raise ValueError("throttle_window_minutes must be > 0")
    for t in config["alerts"].get("thresholds", []):
        if not isinstance(t, dict) or not {"metric", "warning", "critical"} <= t.keys():
            raise ValueError(f"alert threshold needs metric, warning and critical: {t}")
        if t["critical"] < t["warning"]:
            raise ValueError(f"alert threshold {t['metric']}: critical must be >= warning")
