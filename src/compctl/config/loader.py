import os
import re
import yaml
from pathlib import Path
from typing import Any, Dict

ENV_VAR_PATTERN = re.compile(r"\$\{([^}:]+)(?::([^}]+))?\}")

CONFIG_FILE_NAME = "compctl.yaml"
ALLOWED_KEYS = {"control", "client", "config"}


class ConfigLoadError(Exception):
    """Raised when compctl.yaml exists but cannot be parsed."""


def interpolate_env_vars(content: str) -> str:
    """Replace ${VAR} or ${VAR:default} with environment variables."""
    def replace_match(match: re.Match) -> str:
        var_name = match.group(1)
        default_value = match.group(2) if match.group(2) is not None else ""
        return os.environ.get(var_name, default_value)

    return ENV_VAR_PATTERN.sub(replace_match, content)


def config_path(root_dir: Path) -> Path:
    return root_dir / CONFIG_FILE_NAME


def load_config(path: Path) -> Dict[str, Any]:
    """
    Load compctl.yaml with environment variable interpolation.

    A missing file yields an empty config. A file that is not valid YAML, or
    whose top level is not a mapping, raises ConfigLoadError so a reload can
    be reported as failed instead of silently resetting to defaults.
    """
    if not path.exists():
        return {}

    try:
        content = path.read_text(encoding="utf-8")
        full_config = yaml.safe_load(interpolate_env_vars(content)) or {}
    except (OSError, yaml.YAMLError) as exc:
        raise ConfigLoadError(f"Could not read {path}: {exc}") from exc

    if not isinstance(full_config, dict):
        raise ConfigLoadError(f"Top level of {path} must be a mapping.")

    return {k: v for k, v in full_config.items() if k in ALLOWED_KEYS}
