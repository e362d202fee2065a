import os
from dataclasses import dataclass, fields, replace
from pathlib import Path
from typing import Any, Dict, Optional

from dotenv import load_dotenv

ENV_PREFIX = "CLIPSQUEEZE_"


def _to_bool(value: Optional[str], default: bool = False) -> bool:
    if value is None:
        return default
    return value.strip().lower() in {"1", "true", "yes", "on"}


@dataclass(frozen=True)
class OptimizerConfig:
    jpeg_quality: int = 60
    # below this many bytes an image is a thumbnail or icon, not worth the CPU
    min_bytes: int = 10 * 1024
    min_dimension: int = 16
    # JPEG sources smaller than this are assumed to be compressed already
    jpeg_floor: int = 64 * 1024
    poll_interval: float = 0.25
    revert_window: float = 5.0
    enforce_revert_expiry: bool = False
    api_host: str = "127.0.0.1"
    api_port: int = 3001

    def __post_init__(self) -> None:
        if not 1 <= self.jpeg_quality <= 95:
            raise ValueError(f"jpeg_quality must be within 1..95, got {self.jpeg_quality}")
        if self.min_bytes < 0 or self.jpeg_floor < 0 or self.min_dimension < 0:
            raise ValueError("size thresholds must not be negative")
        if self.poll_interval <= 0:
            raise ValueError("poll_interval must be positive")
        if self.revert_window < 0:
            raise ValueError("revert_window must not be negative")

    @classmethod
    def from_env(cls, *, env_path: Optional[Path] = None) -> "OptimizerConfig":
        load_dotenv(dotenv_path=env_path, override=False)

        values: Dict[str, Any] = {}
        for f in fields(cls):
            raw = os.getenv(ENV_PREFIX + f.name.upper())
            if raw is None or raw.strip() == "":
                continue
            if f.type in (bool, "bool"):
                values[f.name] = _to_bool(raw)
            elif f.type in (int, "int"):
                values[f.name] = int(raw)
            elif f.type in (float, "float"):
                values[f.name] = float(raw)
            else:
                values[f.name] = raw.strip()
        return cls(**values)

    def with_overrides(self, **overrides: Any) -> "OptimizerConfig":
        return replace(self, **{k: v for k, v in overrides.items() if v is not None})
