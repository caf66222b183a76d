"""
Central configuration for the distraction limiter service.
All values can be overridden via environment variables or a local config.json.
"""

from __future__ import annotations

import json
import os
from dataclasses import dataclass, field
from pathlib import Path

_ROOT = Path(__file__).parent.parent
_CONFIG_FILE = _ROOT / "config.json"


@dataclass
class Config:
    # API
    api_host: str = "127.0.0.1"
    api_port: int = 8766

    # Tracking
    tick_interval_s: float = 2.0             # usage flush period while a session is active
    session_stale_s: float = 60.0            # persisted sessions older than this are orphaned

    # Blocking
    interstitial_url: str = "moz-extension://distraction-limiter/pages/timeout/index.html"
    max_restore_notifications: int = 2       # per re-evaluation pass

    # Storage
    data_dir: Path = field(default_factory=lambda: _ROOT / "data")
    store_db: str = "limiter.db"
    store_retry_attempts: int = 3
    store_retry_backoff_s: float = 0.05

    # Logging
    log_level: str = "INFO"

    def __post_init__(self):
        self.data_dir = Path(self.data_dir)
        self.data_dir.mkdir(parents=True, exist_ok=True)

    @property
    def store_path(self) -> Path:
        return self.data_dir / self.store_db

    @classmethod
    def load(cls) -> "Config":
        cfg = cls()
        if _CONFIG_FILE.exists():
            overrides = json.loads(_CONFIG_FILE.read_text())
            for k, v in overrides.items():
                if hasattr(cfg, k):
                    setattr(cfg, k, v)
        # environment variable overrides (DL_*)
        for k in cfg.__dataclass_fields__:  # type: ignore[attr-defined]
            env_key = f"DL_{k.upper()}"
            if env_key in os.environ:
                setattr(cfg, k, type(getattr(cfg, k))(os.environ[env_key]))
        cfg.data_dir = Path(cfg.data_dir)
        cfg.data_dir.mkdir(parents=True, exist_ok=True)
        return cfg


# Module-level singleton
config = Config.load()
