# Life Reboot: configuration
# Override paths and endpoints via lifereboot.yaml, LIFEREBOOT_* env vars, or CLI args.

import os
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

import yaml

CONFIG_PATH = Path(__file__).parent.parent / "lifereboot.yaml"

logger = logging.getLogger(__name__)


class ConfigError(Exception):
    """Raised when configuration is invalid or incomplete."""
    pass


@dataclass
class Config:
    """Runtime configuration for the board server and stores."""

    # Remote tables: "sqlite" (local file) or "rest" (hosted PostgREST)
    remote_backend: str = "sqlite"
    remote_url: str = ""
    remote_key_env: str = "LIFEREBOOT_SERVICE_KEY"
    sqlite_path: str = "~/.local/share/lifereboot/remote.db"

    # Auth service (same project URL as the tables when hosted)
    auth_url: str = ""
    auth_key_env: str = "LIFEREBOOT_ANON_KEY"
    site_url: str = "http://localhost:3000"  # redirect target for OAuth / reset mails

    # Local state: connectivity mode + offline outbox
    local_state_path: str = "~/.local/share/lifereboot/local.db"

    # Behavior
    note_debounce_ms: int = 1000
    request_timeout: float = 10.0
    notification_limit: int = 50

    # Server
    host: str = "127.0.0.1"
    port: int = 3000
    log_level: str = "INFO"

    def resolve_paths(self):
        """Expand ~ and apply environment overrides."""
        env_db = os.environ.get("LIFEREBOOT_DB")
        if env_db:
            self.sqlite_path = env_db
        self.sqlite_path = str(Path(self.sqlite_path).expanduser())
        self.local_state_path = str(Path(self.local_state_path).expanduser())
        if not self.auth_url:
            self.auth_url = self.remote_url

    def validate(self):
        if self.remote_backend not in ("sqlite", "rest"):
            raise ConfigError(
                f"remote_backend must be 'sqlite' or 'rest', got: '{self.remote_backend}'"
            )
        if self.note_debounce_ms < 0:
            raise ConfigError("note_debounce_ms must be >= 0")

    @classmethod
    def load(cls, path: Optional[str] = None) -> "Config":
        """Load config from YAML file, falling back to defaults."""
        path = path or os.environ.get("LIFEREBOOT_CONFIG")
        cfg_path = Path(path) if path else CONFIG_PATH
        if cfg_path.exists():
            try:
                with open(cfg_path, "r") as f:
                    data = yaml.safe_load(f) or {}
            except yaml.YAMLError as e:
                raise ConfigError(f"Cannot parse {cfg_path}: {e}")
            unknown = [k for k in data if not hasattr(cls, k)]
            if unknown:
                logger.warning(f"Ignoring unknown config keys: {', '.join(sorted(unknown))}")
            cfg = cls(**{k: v for k, v in data.items() if hasattr(cls, k)})
        else:
            cfg = cls()
        cfg.resolve_paths()
        cfg.validate()
        return cfg
