"""
Configuration loading for tlreport.

Notes:
- The configuration section key is `tlreport`.
- The default config file is `tlreport.yaml` in the working directory.

Priority (highest to lowest):
1. Explicit overrides (command-line flags)
2. Environment variables (TLREPORT_* prefix)
3. YAML config file
4. Default values

Usage:
    >>> from tlreport.config_loader import load_config
    >>> config = load_config(overrides={"plain_text": True})
    >>> config.plain_text
    True
"""

import logging
import os
from dataclasses import dataclass, replace
from pathlib import Path
from typing import Any, Dict, Mapping, Optional, Union

import yaml

_logger = logging.getLogger(__name__)

DEFAULT_CONFIG_FILENAME = "tlreport.yaml"
SECTION_KEY = "tlreport"

_TRUTHY = {"1", "true", "yes", "on"}
_FALSEY = {"0", "false", "no", "off"}


@dataclass(frozen=True)
class ReportConfig:
    """Read-only settings shared by every rendering module."""

    plain_text: bool = False
    custom_header_html: str = ""
    export_mode: bool = False
    parallel: bool = False


class ConfigSchema:
    """Schema validation for the `tlreport` config section."""

    # field -> (type, description)
    SCHEMA = {
        "plain_text": (bool, "Write generated code as .txt instead of HTML"),
        "custom_header_html": (str, "HTML inserted at the top of the index page"),
        "export_mode": (bool, "Render export diagnostics instead of the full report"),
        "parallel": (bool, "Render modules on a thread pool"),
    }

    @classmethod
    def validate(cls, section: Dict[str, Any]) -> Dict[str, Any]:
        """
        Validate a config section against the schema.

        Raises:
            ValueError: If any field is unknown or has the wrong type
        """
        errors = []
        for key, value in section.items():
            if key not in cls.SCHEMA:
                errors.append(f"Unknown field: {SECTION_KEY}.{key}")
                continue
            field_type, _ = cls.SCHEMA[key]
            if value is not None and not isinstance(value, field_type):
                errors.append(
                    f"Invalid type for {SECTION_KEY}.{key}: "
                    f"expected {field_type.__name__}, "
                    f"got {type(value).__name__}"
                )

        if errors:
            raise ValueError("Configuration validation failed:\n" + "\n".join(errors))

        return section


def parse_flag(value: str) -> Optional[bool]:
    """Interpret an environment string as a boolean; None when unrecognized."""
    normalized = value.strip().lower()
    if normalized in _TRUTHY:
        return True
    if normalized in _FALSEY:
        return False
    return None


def _load_yaml_section(path: Path) -> Dict[str, Any]:
    try:
        with open(path, "r", encoding="utf-8") as f:
            data = yaml.safe_load(f) or {}
    except yaml.YAMLError as e:
        raise ValueError(f"Invalid YAML in {path}: {e}") from e

    if not isinstance(data, dict):
        raise ValueError(f"Config file {path} must contain a mapping")

    section = data.get(SECTION_KEY, {})
    if section is None:
        return {}
    if not isinstance(section, dict):
        raise ValueError(f"Section '{SECTION_KEY}' in {path} must be a mapping")
    return ConfigSchema.validate(dict(section))


def _env_overrides(environ: Mapping[str, str]) -> Dict[str, Any]:
    result: Dict[str, Any] = {}
    for key, env_name in (
        ("plain_text", "TLREPORT_PLAIN_TEXT"),
        ("export_mode", "TLREPORT_EXPORT_MODE"),
        ("parallel", "TLREPORT_PARALLEL"),
    ):
        raw = environ.get(env_name)
        if raw is None:
            continue
        flag = parse_flag(raw)
        if flag is None:
            _logger.warning("Ignoring %s=%r: expected a boolean", env_name, raw)
            continue
        result[key] = flag

    header = environ.get("TLREPORT_CUSTOM_HEADER_HTML")
    if header is not None:
        result["custom_header_html"] = header
    return result


def load_config(
    config_path: Optional[Union[str, Path]] = None,
    overrides: Optional[Dict[str, Any]] = None,
    environ: Optional[Mapping[str, str]] = None,
) -> ReportConfig:
    """
    Build a ReportConfig from defaults, a YAML file, the environment and
    explicit overrides.

    Args:
        config_path: YAML file to read. When None, `tlreport.yaml` in the
            working directory is used if it exists.
        overrides: Values that win over every other source. None values are
            ignored so unset CLI flags do not mask lower layers.
        environ: Environment mapping, defaults to os.environ.

    Raises:
        ValueError: If the config file or overrides are invalid
        FileNotFoundError: If an explicit config_path does not exist
    """
    environ = os.environ if environ is None else environ
    config = ReportConfig()

    if config_path is not None:
        path = Path(config_path)
        if not path.is_file():
            raise FileNotFoundError(f"Config file not found: {path}")
    else:
        path = Path.cwd() / DEFAULT_CONFIG_FILENAME

    if path.is_file():
        _logger.debug("Loading config from %s", path)
        section = {k: v for k, v in _load_yaml_section(path).items() if v is not None}
        config = replace(config, **section)

    config = replace(config, **_env_overrides(environ))

    if overrides:
        explicit = {k: v for k, v in overrides.items() if v is not None}
        config = replace(config, **ConfigSchema.validate(explicit))

    return config
