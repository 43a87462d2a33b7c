"""Configuration management — dataclass-based, JSON file + env overrides."""

import json
import logging
import os
import tempfile
from dataclasses import dataclass, fields
from pathlib import Path

logger = logging.getLogger(__name__)

# Supported cities → NWS observation station used as ground truth
STATIONS = {
    "NYC": {"station": "KNYC", "name": "New York City (Central Park)", "lat": 40.7831, "lon": -73.9712},
    "Chicago": {"station": "KMDW", "name": "Chicago (Midway Airport)", "lat": 41.7868, "lon": -87.7522},
    "Miami": {"station": "KMIA", "name": "Miami (MIA Airport)", "lat": 25.7959, "lon": -80.287},
    "Austin": {"station": "KAUS", "name": "Austin (Bergstrom Airport)", "lat": 30.1945, "lon": -97.6699},
    "Denver": {"station": "KDEN", "name": "Denver (DEN Airport)", "lat": 39.8561, "lon": -104.6737},
    "Houston": {"station": "KHOU", "name": "Houston (Hobby Airport)", "lat": 29.6454, "lon": -95.2789},
    "Philadelphia": {"station": "KPHL", "name": "Philadelphia (PHL Airport)", "lat": 39.8721, "lon": -75.2411},
}

# Historical forecast error std dev (°F) of the NWS daily high, [Jan..Dec]
HISTORICAL_SIGMA = {
    "NYC": [3.0, 3.0, 3.2, 3.0, 2.8, 2.5, 2.2, 2.2, 2.5, 2.8, 3.0, 3.0],
    "Chicago": [3.5, 3.5, 3.8, 3.5, 3.0, 2.8, 2.5, 2.5, 2.8, 3.2, 3.5, 3.5],
    "Miami": [2.0, 2.0, 2.0, 2.2, 2.5, 2.5, 2.2, 2.2, 2.5, 2.5, 2.2, 2.0],
    "Austin": [3.0, 3.0, 3.2, 3.0, 2.8, 2.5, 2.0, 2.0, 2.5, 3.0, 3.0, 3.0],
    "Denver": [4.0, 4.0, 4.5, 4.0, 3.5, 3.0, 2.5, 2.5, 3.0, 3.5, 4.0, 4.0],
    "Houston": [2.8, 2.8, 3.0, 2.8, 2.5, 2.2, 2.0, 2.0, 2.5, 2.8, 2.8, 2.8],
    "Philadelphia": [3.0, 3.0, 3.2, 3.0, 2.8, 2.5, 2.2, 2.2, 2.5, 2.8, 3.0, 3.0],
}

# Environment variable mapping
_ENV_MAP = {
    "cities": "ORACLE_CITIES",
    "ledger_file": "ORACLE_LEDGER_FILE",
    "retention_days": "ORACLE_RETENTION_DAYS",
    "resolve_interval_seconds": "ORACLE_RESOLVE_INTERVAL",
    "user_agent": "ORACLE_USER_AGENT",
    "log_level": "ORACLE_LOG_LEVEL",
}


@dataclass
class Config:
    # Cities served (comma-separated keys of STATIONS)
    cities: str = ",".join(STATIONS)

    # Ledger
    ledger_file: str = "predictions.json"
    retention_days: int = 90

    # Resolution schedule
    resolve_interval_seconds: int = 3600
    resolve_startup_delay_seconds: int = 10
    max_consecutive_failures: int = 5

    # HTTP (NWS collaborator)
    user_agent: str = "(weather-oracle, ops@example.com)"
    http_timeout: int = 30
    max_retries: int = 3
    retry_base_delay: float = 1.0

    # Logging
    log_level: str = "INFO"

    @property
    def active_cities(self) -> list[str]:
        """Canonical city keys, case-insensitive: ``"nyc,miami"`` → ``["NYC", "Miami"]``."""
        canonical = {k.lower(): k for k in STATIONS}
        result = []
        for raw in self.cities.split(","):
            raw = raw.strip()
            if not raw:
                continue
            result.append(canonical.get(raw.lower(), raw))
        return result

    @classmethod
    def load(cls, config_dir: str) -> "Config":
        """Load config with priority: config.json > env vars > defaults."""
        config_path = Path(config_dir) / "config.json"
        file_cfg: dict = {}
        if config_path.exists():
            try:
                with open(config_path) as f:
                    file_cfg = json.load(f)
            except (json.JSONDecodeError, IOError) as exc:
                logger.warning("Failed to load %s: %s", config_path, exc)

        kwargs: dict = {}
        for f in fields(cls):
            if f.name in file_cfg:
                kwargs[f.name] = _coerce(file_cfg[f.name], f.type)
            elif f.name in _ENV_MAP:
                env_val = os.environ.get(_ENV_MAP[f.name])
                if env_val is not None:
                    kwargs[f.name] = _coerce(env_val, f.type)

        return cls(**kwargs)

    def save(self, config_dir: str) -> None:
        """Persist current config to config.json (atomic write)."""
        config_path = Path(config_dir) / "config.json"
        data = {f.name: getattr(self, f.name) for f in fields(self)}
        fd, tmp = tempfile.mkstemp(dir=config_dir, suffix=".tmp")
        try:
            with os.fdopen(fd, "w") as f:
                json.dump(data, f, indent=2)
            os.replace(tmp, str(config_path))
        except BaseException:
            try:
                os.unlink(tmp)
            except OSError:
                pass
            raise
        logger.info("Config saved to %s", config_path)

    def update(self, overrides: dict) -> None:
        """Apply key=value overrides (from --set CLI flag)."""
        field_types = {f.name: f.type for f in fields(self)}
        for key, value in overrides.items():
            if key not in field_types:
                logger.warning("Unknown config key: %s", key)
                continue
            setattr(self, key, _coerce(value, field_types[key]))

    def ledger_path(self, config_dir: str) -> str:
        """Ledger file path, relative paths resolved against *config_dir*."""
        path = Path(self.ledger_file)
        if not path.is_absolute():
            path = Path(config_dir) / path
        return str(path)


def _coerce(value, type_hint):
    """Coerce a value to the declared field type."""
    if type_hint == "int" or type_hint is int:
        return int(value)
    if type_hint == "float" or type_hint is float:
        return float(value)
    return str(value)
