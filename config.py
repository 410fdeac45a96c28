import os

from counters import LIKE_MODES

BASE_DIR = os.path.dirname(os.path.abspath(__file__))

COUNTER_MODES = ("cached", "direct")

DEFAULTS = {
    "DEV_MODE": False,
    "STORE_PATH": "jairo.db",
    "HOST": "0.0.0.0",
    "PORT": 3003,
    "THREADS": 20,
    "COUNTER_MODE": "cached",   # cached | direct
    "LIKE_MODE": "observed",    # observed | likes-only
    "FLUSH_INTERVAL": 5.0,
    "RENDER_WORKERS": 4,
    "PUBLIC_DIR": os.path.join(BASE_DIR, "public"),
    "TEMPLATE_DIR": os.path.join(BASE_DIR, "templates"),
}


class ConfigError(Exception):
    pass


def load_config(config, overrides=None):
    """
    Fill a Flask config object: defaults, then JAIRO_* environment
    variables, then explicit overrides.
    """
    config.from_mapping(DEFAULTS)
    config.from_prefixed_env("JAIRO")
    if overrides:
        config.from_mapping(overrides)
    validate(config)
    return config


def validate(config):
    if config["COUNTER_MODE"] not in COUNTER_MODES:
        raise ConfigError(f"COUNTER_MODE must be one of {COUNTER_MODES}, got {config['COUNTER_MODE']!r}")
    if config["LIKE_MODE"] not in LIKE_MODES:
        raise ConfigError(f"LIKE_MODE must be one of {LIKE_MODES}, got {config['LIKE_MODE']!r}")
    try:
        interval = float(config["FLUSH_INTERVAL"])
    except (TypeError, ValueError):
        raise ConfigError(f"FLUSH_INTERVAL must be a number, got {config['FLUSH_INTERVAL']!r}")
    if interval <= 0:
        raise ConfigError("FLUSH_INTERVAL must be positive")
    config["FLUSH_INTERVAL"] = interval
    config["DEV_MODE"] = parse_bool("DEV_MODE", config["DEV_MODE"])
    for key in ("PORT", "THREADS", "RENDER_WORKERS"):
        config[key] = parse_int(key, config[key])


TRUE_WORDS = ("true", "1", "yes", "on")
FALSE_WORDS = ("false", "0", "no", "off")


def parse_bool(key, value):
    # from_prefixed_env leaves strings it cannot JSON-decode, e.g. "False" or "no"
    if isinstance(value, bool):
        return value
    word = str(value).strip().lower()
    if word in TRUE_WORDS:
        return True
    if word in FALSE_WORDS:
        return False
    raise ConfigError(f"{key} must be one of {TRUE_WORDS + FALSE_WORDS}, got {value!r}")


def parse_int(key, value):
    if isinstance(value, bool):
        raise ConfigError(f"{key} must be an integer, got {value!r}")
    try:
        return int(value)
    except (TypeError, ValueError):
        raise ConfigError(f"{key} must be an integer, got {value!r}")
