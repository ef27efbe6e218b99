"""Settings for TimeTracker, read from config.json in the data directory."""

import json
import logging
import os
from pathlib import Path
from typing import Optional

from pydantic import BaseModel, ValidationError

logger = logging.getLogger(__name__)

CONFIG_FILENAME = "config.json"


def default_data_dir() -> Path:
    """Get the data directory, honouring TIMETRACKER_DATA_DIR."""
    # Computed at call time so tests that monkeypatch the environment behave.
    env_dir = os.getenv("TIMETRACKER_DATA_DIR")
    if env_dir:
        return Path(env_dir).expanduser()
    return Path.home() / ".timetracker"


class TrackerSettings(BaseModel):
    """Tunable behaviour of the session engine.

    The resume thresholds are in seconds.
    """

    data_dir: Path = Path.home() / ".timetracker"
    require_note: bool = True
    resume_min_delay: float = 2.0
    resume_max_age: float = 4 * 60 * 60.0
    resume_debounce: float = 10.0
    resume_retry_delay: float = 20.0
    log_level: str = "INFO"

    model_config = {"arbitrary_types_allowed": True}

    @property
    def config_file(self) -> Path:
        return self.data_dir / CONFIG_FILENAME


def load_settings(data_dir: Optional[Path] = None) -> TrackerSettings:
    """Build settings from config.json and the environment.

    A missing config file yields defaults. An unreadable or invalid one is
    logged and ignored.
    """
    resolved_dir = Path(data_dir).expanduser() if data_dir else default_data_dir()
    values = {}

    config_file = resolved_dir / CONFIG_FILENAME
    if config_file.exists():
        try:
            loaded = json.loads(config_file.read_text(encoding="utf-8"))
            if isinstance(loaded, dict):
                values.update(loaded)
            else:
                logger.error("Ignoring %s: expected a JSON object", config_file)
        except (OSError, json.JSONDecodeError) as e:
            logger.error("Ignoring unreadable config %s: %s", config_file, e)

    values["data_dir"] = resolved_dir

    env_level = os.getenv("TIMETRACKER_LOG_LEVEL")
    if env_level:
        values["log_level"] = env_level

    try:
        return TrackerSettings(**values)
    except ValidationError as e:
        logger.error("Invalid settings in %s, using defaults: %s", config_file, e)
        return TrackerSettings(data_dir=resolved_dir)


def save_settings(settings: TrackerSettings) -> Path:
    """Write settings to config.json, leaving out the data directory itself."""
    settings.data_dir.mkdir(parents=True, exist_ok=True)
    data = settings.model_dump(mode="json", exclude={"data_dir"})
    settings.config_file.write_text(json.dumps(data, indent=2))
    return settings.config_file
