import tomllib
import shutil
from pathlib import Path
from typing import Any, Dict, Optional
from dotenv import load_dotenv
import os

CONFIG_DIR = Path.home() / ".lexisync"
CONFIG_PATH = CONFIG_DIR / "config.toml"
PROJECT_CONFIG_EXAMPLE = Path(__file__).parent / "config.toml"

DEFAULTS: Dict[str, Dict[str, Any]] = {
    "scheduler": {
        "min_ease": 1.3,
        "max_ease": 2.5,
        "first_interval": 1,
        "second_interval": 6,
    },
    "retry": {
        "max_attempts": 3,
        "initial_delay": 1.0,
        "max_delay": 10.0,
        "backoff_multiplier": 2.0,
    },
    "sync": {
        "endpoint": "",
        "account_id": "",
        "debounce_seconds": 3.0,
        "timeout": 10.0,
    },
    "quiz": {
        "base_url": "http://127.0.0.1:8000/quiz",
        "expiration_days": 7,
        "max_words": 20,
    },
    "dictionary": {
        "endpoint": "https://api.dictionaryapi.dev/api/v2/entries/en",
        "timeout": 10.0,
    },
    "logging": {
        "level": "INFO",
        "json": False,
    },
}

# Environment overrides: (section, key) -> (variable, type)
ENV_OVERRIDES = {
    ("sync", "endpoint"): ("LEXISYNC_SYNC_ENDPOINT", str),
    ("sync", "account_id"): ("LEXISYNC_ACCOUNT_ID", str),
    ("sync", "debounce_seconds"): ("LEXISYNC_SYNC_DEBOUNCE", float),
    ("quiz", "base_url"): ("LEXISYNC_QUIZ_URL", str),
    ("quiz", "expiration_days"): ("LEXISYNC_QUIZ_EXPIRATION_DAYS", int),
    ("dictionary", "endpoint"): ("LEXISYNC_DICTIONARY_ENDPOINT", str),
    ("retry", "max_attempts"): ("LEXISYNC_RETRY_ATTEMPTS", int),
    ("logging", "level"): ("LEXISYNC_LOG_LEVEL", str),
    ("logging", "json"): ("LEXISYNC_LOG_JSON", bool),
}


def _coerce(raw: str, kind: type) -> Any:
    if kind is bool:
        return raw.strip().lower() in {"1", "true", "yes", "on"}
    return kind(raw)


def load_config() -> Dict[str, Any]:
    """Load config from ~/.lexisync/config.toml, copy example if missing, apply .env overrides."""
    load_dotenv()  # Load .env for overrides (e.g., LEXISYNC_SYNC_ENDPOINT)
    if not CONFIG_PATH.exists():
        CONFIG_DIR.mkdir(parents=True, exist_ok=True)
        shutil.copy(PROJECT_CONFIG_EXAMPLE, CONFIG_PATH)
    with open(CONFIG_PATH, "rb") as f:
        config = tomllib.load(f)

    for section, defaults in DEFAULTS.items():
        table = config.get(section, {})
        config[section] = {**defaults, **table}

    for (section, key), (variable, kind) in ENV_OVERRIDES.items():
        raw = os.getenv(variable)
        if raw is not None and raw != "":
            config[section][key] = _coerce(raw, kind)
    return config


def get_config_value(section: str, key: str, default: Optional[Any] = None) -> Any:
    """Get nested config value, e.g., get_config_value('quiz', 'base_url')."""
    config = load_config()
    value = config.get(section, {}).get(key, default)
    return value
