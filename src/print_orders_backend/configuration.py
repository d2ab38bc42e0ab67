import os
from dataclasses import dataclass, field
from functools import lru_cache
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional

from dotenv import load_dotenv
from omegaconf import OmegaConf

MEGABYTE = 1024 * 1024

CONFIG_ENV_VAR = "PRINT_ORDERS_CONFIG"
DEFAULT_CONFIG_PATH = Path("config/config.yaml")

# Environment variable -> settings key
ENV_OVERRIDES: Dict[str, str] = {
    "DATABASE_PATH": "database_path",
    "UPLOAD_DIR": "upload_dir",
    "STATIC_DIR": "static_dir",
    "IMAGES_DIR": "images_dir",
    "ADMIN_USERNAME": "admin_username",
    "ADMIN_PASSWORD": "admin_password",
    "SESSION_TTL_HOURS": "session_ttl_hours",
    "MAX_UPLOAD_BYTES": "max_upload_bytes",
    "MAX_JSON_BYTES": "max_json_bytes",
    "CORS_ORIGINS": "cors_origins",
    "HOST": "host",
    "PORT": "port",
    "LOG_LEVEL": "log_level",
}

LIST_KEYS = {"cors_origins"}


@dataclass
class Settings:
    database_path: str = "data/xerox_orders.db"
    upload_dir: str = "uploads"
    static_dir: str = "dist"
    images_dir: str = "images"
    admin_username: str = "admin"
    admin_password: str = "xerox123"
    session_ttl_hours: int = 24
    max_upload_bytes: int = 50 * MEGABYTE
    max_json_bytes: int = 50 * MEGABYTE
    cors_origins: List[str] = field(default_factory=lambda: ["*"])
    host: str = "0.0.0.0"
    port: int = 4173
    log_level: str = "INFO"

    @property
    def database_file(self) -> Path:
        return Path(self.database_path)

    @property
    def upload_root(self) -> Path:
        return Path(self.upload_dir)

    @property
    def static_root(self) -> Path:
        return Path(self.static_dir)

    @property
    def images_root(self) -> Path:
        return Path(self.images_dir)


def _env_overrides(environ: Mapping[str, str]) -> Dict[str, Any]:
    overrides: Dict[str, Any] = {}
    for env_name, key in ENV_OVERRIDES.items():
        raw = environ.get(env_name)
        if raw is None or raw == "":
            continue
        if key in LIST_KEYS:
            overrides[key] = [item.strip() for item in raw.split(",") if item.strip()]
        else:
            overrides[key] = raw
    return overrides


def _config_file(environ: Mapping[str, str]) -> Optional[Path]:
    explicit = environ.get(CONFIG_ENV_VAR)
    if explicit:
        path = Path(explicit)
        if not path.exists():
            raise FileNotFoundError(f"Config file not found at {path}")
        return path
    return DEFAULT_CONFIG_PATH if DEFAULT_CONFIG_PATH.exists() else None


def load_settings(
    environ: Optional[Mapping[str, str]] = None,
    overrides: Optional[Dict[str, Any]] = None,
) -> Settings:
    """
    Build settings by layering defaults, an optional YAML file, environment
    variables and explicit overrides (later layers win).

    Args:
        environ: Environment mapping to read from (default: os.environ after
            loading a local .env file)
        overrides: Explicit values, mainly for tests and embedding

    Returns:
        A validated Settings instance

    Raises:
        FileNotFoundError: If PRINT_ORDERS_CONFIG points to a missing file
        omegaconf.errors.ValidationError: If a value has the wrong type
    """
    if environ is None:
        load_dotenv()
        environ = os.environ

    base = OmegaConf.structured(Settings)
    layers = []

    config_path = _config_file(environ)
    if config_path is not None:
        layers.append(OmegaConf.load(config_path))

    layers.append(OmegaConf.create(_env_overrides(environ)))
    layers.append(OmegaConf.create(overrides or {}))

    merged = OmegaConf.merge(base, *layers)
    return OmegaConf.to_object(merged)  # type: ignore[return-value]


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    return load_settings()
