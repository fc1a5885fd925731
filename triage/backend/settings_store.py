"""Dashboard settings: defaults merged with settings_overrides.json.

Only keys known to ``TriageSettings`` are honoured. Unknown or invalid
overrides are logged and dropped so a bad hand edit never blocks startup.
"""

import json
import logging
import os
from pathlib import Path
from typing import Any, Literal

from pydantic import BaseModel, Field, ValidationError, field_validator

from . import config

logger = logging.getLogger(__name__)


class TriageSettings(BaseModel):
    email_provider: Literal["gmail", "outlook", "imap"] = "gmail"
    auto_response: bool = True
    urgent_keywords: str = "urgent, critical, asap, immediately, emergency"
    sentiment_threshold: float = Field(0.7, ge=0.0, le=1.0)
    response_template: Literal["professional", "friendly", "concise"] = "professional"
    notifications_enabled: bool = True
    batch_size: int = Field(10, ge=1, le=100)
    processing_interval: int = Field(30, ge=1)
    knowledge_base: bool = True
    data_retention: int = Field(90, ge=1)
    cadence_seconds: float = Field(config.CADENCE_SECONDS, gt=0)
    process_seconds: float = Field(config.PROCESS_SECONDS, gt=0)

    @field_validator("urgent_keywords")
    @classmethod
    def _tidy_keywords(cls, value: str) -> str:
        words = [w.strip().lower() for w in value.split(",") if w.strip()]
        return ", ".join(dict.fromkeys(words))

    def keyword_list(self) -> list[str]:
        return [w.strip() for w in self.urgent_keywords.split(",") if w.strip()]


SETTING_KEYS = frozenset(TriageSettings.model_fields)


# ── Atomic I/O ──

def _safe_load_json_direct(path: Path):
    try:
        with open(path, "r", encoding="utf-8") as f:
            return json.load(f), None
    except FileNotFoundError:
        return None, f"Missing file: {path.name}"
    except json.JSONDecodeError as e:
        return None, f"Invalid JSON in {path.name}: {e}"
    except OSError as e:
        return None, f"Read failed for {path.name}: {e}"


def _atomic_write_json(path: Path, obj) -> tuple[bool, str | None]:
    """Atomic write: write temp then os.replace()."""
    tmp_path = None
    try:
        path.parent.mkdir(parents=True, exist_ok=True)
        tmp_path = path.with_name(path.name + f".tmp.{os.getpid()}")
        with open(tmp_path, "w", encoding="utf-8", newline="\n") as f:
            json.dump(obj, f, indent=2)
            f.write("\n")
        os.replace(tmp_path, path)
        return True, None
    except Exception as e:
        try:
            if tmp_path and tmp_path.exists():
                tmp_path.unlink(missing_ok=True)
        except OSError:
            pass
        return False, str(e)


# ── Public API ──

def load_overrides(path: Path | None = None) -> dict[str, Any]:
    """Return the valid subset of the overrides file."""
    path = path or config.SETTINGS_OVERRIDES_JSON
    data, err = _safe_load_json_direct(path)
    if err is not None:
        if "Missing file" not in err:
            logger.warning("Settings overrides load error: %s", err)
        return {}
    if not isinstance(data, dict):
        logger.warning("Settings overrides must be a JSON object, ignoring %s", path.name)
        return {}

    valid: dict[str, Any] = {}
    for key, value in data.items():
        if key not in SETTING_KEYS:
            logger.warning("Ignoring unknown setting %r", key)
            continue
        try:
            TriageSettings.model_validate({key: value})
        except ValidationError as e:
            logger.warning("Ignoring invalid setting %s=%r: %s", key, value, e.errors()[0]["msg"])
            continue
        valid[key] = value
    return valid


def load_settings(path: Path | None = None) -> TriageSettings:
    return TriageSettings.model_validate(load_overrides(path))


def update_setting(key: str, value: Any, path: Path | None = None) -> TriageSettings:
    """Validate and persist one setting.

    Raises KeyError for an unknown key, ValueError for an invalid value and
    OSError when the write fails.
    """
    path = path or config.SETTINGS_OVERRIDES_JSON
    if key not in SETTING_KEYS:
        raise KeyError(key)

    overrides = load_overrides(path)
    overrides[key] = value
    try:
        settings = TriageSettings.model_validate(overrides)
    except ValidationError as e:
        raise ValueError(f"Invalid value for {key}: {e.errors()[0]['msg']}") from None

    # Persist the normalised value, not the raw one
    overrides[key] = getattr(settings, key)
    ok, err = _atomic_write_json(path, overrides)
    if not ok:
        raise OSError(err or f"Failed to write {path.name}")
    logger.info("Updated setting %s", key)
    return settings
