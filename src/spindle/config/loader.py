import os
import re
import yaml
from pathlib import Path
from typing import Any, Dict, Optional

from spindle.core.models import SpindleSettings

ENV_VAR_PATTERN = re.compile(r"\$\{([^}:]+)(?::([^}]+))?\}")
ALLOWED_KEYS = {"spindle", "framework", "state"}

def interpolate_env_vars(content: str) -> str:
    """Replace ${VAR} or ${VAR:default} with environment variables."""
    def replace_match(match: re.Match) -> str:
        var_name = match.group(1)
        default_value = match.group(2) if match.group(2) is not None else ""
        return os.environ.get(var_name, default_value)

    return ENV_VAR_PATTERN.sub(replace_match, content)

def config_path(root: Path) -> Path:
    """Return the location of spindle.yaml for an application root."""
    return root / "config" / "spindle.yaml"

def load_config(path: Path) -> Dict[str, Any]:
    """
    Load spindle.yaml with environment variable interpolation.

    Only the keys spindle, framework and state are kept.
    """
    if not path.exists():
        return {}

    try:
        content = path.read_text()
        interpolated_content = interpolate_env_vars(content)
        full_config = yaml.safe_load(interpolated_content) or {}
    except (OSError, yaml.YAMLError):
        return {}

    if not isinstance(full_config, dict):
        return {}

    return {k: v for k, v in full_config.items() if k in ALLOWED_KEYS}

def build_settings(root: Path, overrides: Optional[Dict[str, Any]] = None) -> SpindleSettings:
    """
    Build settings for an application root.

    Precedence: explicit overrides, then the 'spindle' section of
    config/spindle.yaml, then SPINDLE_* environment variables, then defaults.
    """
    config_data = load_config(config_path(root))
    values: Dict[str, Any] = dict(config_data.get("spindle") or {})
    if config_data.get("framework"):
        values["framework"] = config_data["framework"]
    values["root"] = root
    values.update({k: v for k, v in (overrides or {}).items() if v is not None})
    return SpindleSettings(**values)
