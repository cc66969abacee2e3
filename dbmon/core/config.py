from __future__ import annotations

import json
import shutil
from pathlib import Path
from typing import Literal

from pydantic import Field, TypeAdapter, ValidationError
from pydantic_settings import BaseSettings, SettingsConfigDict

from dbmon.core.models import Target

CYCLE_INTERVAL_MS = 1000
PROBE_TIMEOUT_MS = 5000
SHUTDOWN_GRACE_SEC = 2.0


class ConfigError(Exception):
    pass


class Settings(BaseSettings):
    # ENV-only configuration, targets come from the JSON file below
    model_config = SettingsConfigDict(env_prefix="")

    targets_file: Path = Path("config.json")
    export_mode: Literal["prompt", "always", "never"] = "prompt"
    export_dir: Path = Path(".")
    log_level: str = Field(default="INFO")
    clear_screen: bool = True
    telegram_bot_token: str | None = None
    telegram_chat_id: str | None = None
    telegram_parse_mode: str = "Markdown"


settings = Settings()

_targets_adapter = TypeAdapter(list[Target])


def example_path(path: Path) -> Path:
    """Sample targets file shipped next to ``path`` (``config.json.example``)."""
    return path.with_name(path.name + ".example")


def create_from_example(path: Path) -> Path:
    example = example_path(path)
    try:
        shutil.copyfile(example, path)
    except OSError as exc:
        raise ConfigError(f"Cannot create '{path}' from '{example}': {exc}") from exc
    return path


def load_targets(path: Path) -> list[Target]:
    """Read and validate the targets file.

    Returns every enabled target in file order. Raises ConfigError when the file
    is missing, is not valid JSON, fails validation or repeats a name.
    """
    try:
        raw = path.read_text(encoding="utf-8")
    except FileNotFoundError as exc:
        message = f"Configuration file '{path}' not found"
        example = example_path(path)
        if example.is_file():
            message += f". Copy '{example}' to '{path}' and edit it to get started"
        raise ConfigError(message) from exc
    except OSError as exc:
        raise ConfigError(f"Cannot read configuration file '{path}': {exc}") from exc

    try:
        data = json.loads(raw)
    except json.JSONDecodeError as exc:
        raise ConfigError(f"Configuration file '{path}' is not valid JSON: {exc}") from exc

    try:
        targets = _targets_adapter.validate_python(data)
    except ValidationError as exc:
        raise ConfigError(f"Invalid target configuration in '{path}':\n{exc}") from exc

    seen: set[str] = set()
    for target in targets:
        if target.name in seen:
            raise ConfigError(f"Duplicate target name '{target.name}' in '{path}'")
        seen.add(target.name)

    return [target for target in targets if not target.disabled]
