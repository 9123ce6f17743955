"""Configuration loading for optdoc (.optdoc.yml)."""

from __future__ import annotations

import shlex
from dataclasses import dataclass, field, replace
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple

import yaml

from .registry import DEFAULT_DELIMITER
from .render import available_formats
from .transport import resolve_address

CONFIG_FILENAME = ".optdoc.yml"
DEFAULT_OUTPUT_DIR = Path("target") / "optdoc"
DEFAULT_BUILD_COMMAND: Tuple[str, ...] = ("cargo", "doc")


class ConfigError(RuntimeError):
    """Raised when the configuration file exists but cannot be used."""


@dataclass
class BuildConfig:
    """How to run the build whose producers report records."""

    command: List[str] = field(default_factory=lambda: list(DEFAULT_BUILD_COMMAND))
    cwd: Optional[Path] = None
    poll_interval: float = 0.01
    timeout: Optional[float] = None


@dataclass
class OptDocConfig:
    """Resolved settings for one collection and render pass."""

    root: Path
    address: str = field(default_factory=resolve_address)
    output_dir: Path = DEFAULT_OUTPUT_DIR
    render: str = "markdown"
    delimiter: str = DEFAULT_DELIMITER
    roots: Optional[List[str]] = None
    strict_frames: bool = False
    build: BuildConfig = field(default_factory=BuildConfig)

    def __post_init__(self) -> None:
        if not self.output_dir.is_absolute():
            self.output_dir = self.root / self.output_dir

    def with_overrides(self, **values: Any) -> "OptDocConfig":
        """Return a copy with every non-None value applied.

        Build settings are addressed as ``command``, ``cwd``, ``poll_interval``
        and ``timeout``.
        """
        build_keys = {"command", "cwd", "poll_interval", "timeout"}
        build_values = {k: v for k, v in values.items() if k in build_keys and v is not None}
        top_values = {k: v for k, v in values.items() if k not in build_keys and v is not None}
        if "render" in top_values:
            top_values["render"] = _validate_render(top_values["render"])
        if "delimiter" in top_values and not top_values["delimiter"]:
            raise ConfigError("delimiter must not be empty")
        if "output_dir" in top_values:
            top_values["output_dir"] = Path(top_values["output_dir"]).expanduser()
        if "roots" in top_values:
            top_values["roots"] = list(top_values["roots"]) or None
        updated = replace(self, **top_values)
        if build_values:
            updated.build = replace(self.build, **build_values)
        return updated


def load_config(config_path: Path) -> OptDocConfig:
    """Load configuration from disk; a missing file yields defaults."""
    config_file = _resolve_config_path(config_path)
    root = config_file.parent.resolve()

    if not config_file.exists():
        return OptDocConfig(root=root)

    data = _read_config(config_file)
    if not isinstance(data, dict):
        raise ConfigError(f"{CONFIG_FILENAME} must contain a mapping at the root")

    config = OptDocConfig(root=root)

    address = _as_str(data.get("address"))
    if address:
        config.address = address

    output_dir = _as_str(data.get("output_dir"))
    if output_dir:
        config.output_dir = root / Path(output_dir).expanduser()

    render = _as_str(data.get("render"))
    if render:
        config.render = _validate_render(render)

    if "delimiter" in data:
        delimiter = _as_str(data.get("delimiter"))
        if not delimiter:
            raise ConfigError("delimiter must be a non-empty string")
        config.delimiter = delimiter

    if data.get("roots") is not None:
        config.roots = _as_str_list(data.get("roots")) or None

    strict = data.get("strict_frames")
    if strict is not None:
        parsed_strict = _as_bool(strict)
        if parsed_strict is None:
            raise ConfigError("strict_frames must be a boolean")
        config.strict_frames = parsed_strict

    build_data = _as_dict(data.get("build"))
    if build_data:
        config.build = _parse_build(build_data, root)

    return config


def _parse_build(data: Dict[str, Any], root: Path) -> BuildConfig:
    build = BuildConfig()
    command = data.get("command")
    if isinstance(command, str):
        build.command = shlex.split(command)
    elif command is not None:
        build.command = _as_str_list(command)
    if command is not None and not build.command:
        raise ConfigError("build.command must not be empty")

    cwd = _as_str(data.get("cwd"))
    if cwd:
        build.cwd = root / Path(cwd).expanduser()

    if data.get("poll_interval") is not None:
        interval = _as_float(data.get("poll_interval"))
        if interval is None or interval < 0:
            raise ConfigError("build.poll_interval must be a non-negative number")
        build.poll_interval = interval

    if data.get("timeout") is not None:
        timeout = _as_float(data.get("timeout"))
        if timeout is None or timeout <= 0:
            raise ConfigError("build.timeout must be a positive number")
        build.timeout = timeout
    return build


def _resolve_config_path(config_path: Path) -> Path:
    config_path = config_path.expanduser()
    if config_path.is_dir():
        return (config_path / CONFIG_FILENAME).resolve()
    return config_path.resolve()


def _read_config(path: Path) -> Dict[str, Any]:
    try:
        text = path.read_text(encoding="utf-8")
    except OSError as exc:
        raise ConfigError(f"Failed to read {path.name}: {exc}") from exc
    if not text.strip():
        return {}
    try:
        loaded = yaml.safe_load(text)
    except yaml.YAMLError as exc:
        raise ConfigError(f"Failed to parse {path.name}: {exc}") from exc
    return loaded if loaded is not None else {}


def _validate_render(value: str) -> str:
    lowered = value.strip().lower()
    aliases = {"md": "markdown", "yml": "yaml"}
    lowered = aliases.get(lowered, lowered)
    if lowered not in available_formats():
        known = ", ".join(available_formats())
        raise ConfigError(f"Unknown render format '{value}'. Expected one of: {known}")
    return lowered


def _as_dict(value: Any) -> Dict[str, Any]:
    return value if isinstance(value, dict) else {}


def _as_str(value: Any) -> Optional[str]:
    return str(value) if isinstance(value, (str, int, float)) and not isinstance(value, bool) else None


def _as_float(value: Any) -> Optional[float]:
    if isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return float(value)
    if isinstance(value, str):
        try:
            return float(value)
        except ValueError:
            return None
    return None


def _as_bool(value: Any) -> Optional[bool]:
    if isinstance(value, bool):
        return value
    if isinstance(value, str):
        lowered = value.strip().lower()
        if lowered in {"true", "yes", "1"}:
            return True
        if lowered in {"false", "no", "0"}:
            return False
    return None


def _as_str_list(value: Any) -> List[str]:
    if value is None:
        return []
    if isinstance(value, str):
        return [value]
    if isinstance(value, (list, tuple)):
        return [str(item) for item in value if isinstance(item, (str, int, float))]
    return []


__all__ = ["BuildConfig", "ConfigError", "OptDocConfig", "load_config"]
