from __future__ import annotations

import os
from pathlib import Path
from typing import Any, Dict, Optional, Literal

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

try:
    import tomllib  # Python 3.11+
except ModuleNotFoundError:  # pragma: no cover - Python <3.11 not supported per pyproject
    tomllib = None  # type: ignore

from tomlkit import dumps as toml_dumps


DEFAULT_CONFIG_PATH = Path("~/.config/python-audio-merger/config.toml").expanduser()
ENV_PREFIX = "PAM_"


class PamSettings(BaseSettings):
    """Global settings for python-audio-merger.

    Priority (lowest -> highest):
    - Class defaults below
    - TOML file at `config_path` (default: ~/.config/python-audio-merger/config.toml)
    - Environment variables with prefix PAM_
    - CLI overrides passed to `load(overrides=...)`
    """

    # Logging
    log_level: str = Field(default="INFO", description="Console log level")
    log_json: Optional[str] = Field(default=None, description="Path for structured JSON log file")

    # Merge defaults
    output_format: Literal["MP3", "M4B"] = Field(default="MP3", description="Target container")
    bitrate: str = Field(default="64k", description="Audio bitrate used when re-encoding")
    auto_fix: bool = Field(default=False, description="Drop corrupt/empty inputs and accept rate mismatches")
    use_custom_bitrate: bool = Field(
        default=False, description="Force re-encode at `bitrate` instead of stream copy"
    )

    # Engine
    ffmpeg_path: Optional[str] = Field(default=None, description="ffmpeg binary; None = search PATH")
    ffprobe_path: Optional[str] = Field(
        default=None, description="ffprobe binary; None = next to ffmpeg_path, then PATH"
    )
    probe_timeout: float = Field(default=5.0, description="Seconds before a probe counts as corrupt")
    probe_workers: Optional[int] = Field(default=None, description="Concurrent probes; None = one per file")

    # Fast path / progress
    temp_dir: Optional[str] = Field(default=None, description="Directory for temp artifacts; None = system temp")
    chunk_size: int = Field(default=1024 * 1024, description="Read buffer for binary concatenation (bytes)")
    progress_interval: float = Field(default=0.1, description="Minimum seconds between byte progress events")
    fast_speed_threshold: float = Field(
        default=50.0, description="Speed factor above which copy runs are labelled 'merging'"
    )
    fast_path_share: float = Field(
        default=90.0, description="Share of total progress given to raw concatenation"
    )

    # Config source/path (not persisted as part of effective config when writing)
    config_path: Path = Field(default=DEFAULT_CONFIG_PATH, exclude=True)

    model_config = SettingsConfigDict(env_prefix=ENV_PREFIX, extra="ignore")

    @field_validator("output_format", mode="before")
    @classmethod
    def _upper_format(cls, v: Any) -> Any:
        return v.upper() if isinstance(v, str) else v

    @field_validator("fast_path_share")
    @classmethod
    def _share_in_range(cls, v: float) -> float:
        if not 0.0 < v < 100.0:
            raise ValueError("fast_path_share must be between 0 and 100")
        return v

    @classmethod
    def _toml_file_source(cls, config_path: Path) -> Dict[str, Any]:
        """Read settings from a TOML file if it exists; return dict values.

        Unknown keys are ignored by pydantic via extra="ignore".
        """
        if not config_path or not config_path.exists():
            return {}
        if tomllib is None:
            return {}
        with config_path.open("rb") as f:
            data = tomllib.load(f)
        if not isinstance(data, dict):
            return {}
        return data  # type: ignore[return-value]

    @classmethod
    def load(
        cls,
        *,
        config_path: Optional[Path] = None,
        overrides: Optional[Dict[str, Any]] = None,
    ) -> "PamSettings":
        """Load settings from defaults + TOML + env + CLI overrides.

        - config_path: path to TOML config; defaults to ~/.config/python-audio-merger/config.toml
        - overrides: dict of CLI values (None values are ignored)
        """
        cp = config_path or DEFAULT_CONFIG_PATH
        file_values = cls._toml_file_source(cp)
        # Init kwargs outrank env in pydantic-settings, so file keys shadowed by PAM_* are dropped
        env_names = {k.upper() for k in os.environ}
        file_values = {k: v for k, v in file_values.items() if f"{ENV_PREFIX}{k}".upper() not in env_names}
        base = cls(**file_values)
        non_none = {k: v for k, v in (overrides or {}).items() if v is not None}
        merged = base.model_dump()
        merged.update(non_none)
        settings = cls(**merged)
        settings.config_path = cp
        return settings

    def to_toml(self) -> str:
        """Serialize effective settings (excluding ephemeral and unset fields) to TOML."""
        data = {k: v for k, v in self.model_dump(exclude={"config_path"}).items() if v is not None}
        return toml_dumps(data)

    def write(self, path: Optional[Path] = None) -> Path:
        """Write effective config to TOML at `path` (or default path). Creates parent dirs.

        Returns the path written.
        """
        target = path or self.config_path or DEFAULT_CONFIG_PATH
        target.parent.mkdir(parents=True, exist_ok=True)
        target.write_text(self.to_toml(), encoding="utf-8")
        return target


def cli_overrides_from_args(args: Any) -> Dict[str, Any]:
    """Extract known settings keys from argparse Namespace into an overrides dict.

    Unknown keys are ignored; None values are preserved for filtering by `load()`.
    """
    keys = {
        "log_level",
        "log_json",
        "output_format",
        "bitrate",
        "auto_fix",
        "use_custom_bitrate",
        "ffmpeg_path",
        "ffprobe_path",
        "probe_timeout",
        "probe_workers",
        "temp_dir",
    }
    result: Dict[str, Any] = {}
    for k in keys:
        if hasattr(args, k):
            result[k] = getattr(args, k)
    return result
