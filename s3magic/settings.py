from __future__ import annotations
"""Persistent defaults for deletion runs."""

from dataclasses import asdict, dataclass
import json
import logging
from pathlib import Path

LOGGER = logging.getLogger(__name__)


@dataclass
class AppSettings:
    """Defaults applied when the command line leaves a value unset."""

    max_concurrency: int = 8
    page_size: int = 1000
    second_pass: bool = True


def _positive_int(value: object, default: int, *, upper: int | None = None) -> int:
    if isinstance(value, bool):
        return default
    try:
        number = int(value)
    except (TypeError, ValueError):
        return default
    if number <= 0:
        return default
    if upper is not None and number > upper:
        return upper
    return number


class SettingsStorage:
    """JSON-backed persistence for :class:`AppSettings`."""

    def __init__(self, storage_path: str | Path | None = None):
        if storage_path is None:
            storage_path = Path.home() / ".s3magic_settings.json"
        self._path = Path(storage_path)

    @property
    def path(self) -> Path:
        return self._path

    def load(self) -> AppSettings:
        if not self._path.exists():
            return AppSettings()
        try:
            data = json.loads(self._path.read_text(encoding="utf-8"))
        except (OSError, json.JSONDecodeError):
            LOGGER.warning("Ignoring unreadable settings file %s", self._path)
            return AppSettings()
        if not isinstance(data, dict):
            return AppSettings()

        second_pass = data.get("second_pass", AppSettings.second_pass)
        if not isinstance(second_pass, bool):
            second_pass = AppSettings.second_pass
        return AppSettings(
            max_concurrency=_positive_int(data.get("max_concurrency"), AppSettings.max_concurrency),
            page_size=_positive_int(data.get("page_size"), AppSettings.page_size, upper=1000),
            second_pass=second_pass,
        )

    def save(self, settings: AppSettings) -> None:
        payload = asdict(settings)
        payload["max_concurrency"] = max(int(settings.max_concurrency), 1)
        payload["page_size"] = min(max(int(settings.page_size), 1), 1000)
        payload["second_pass"] = bool(settings.second_pass)
        self._path.parent.mkdir(parents=True, exist_ok=True)
        self._path.write_text(json.dumps(payload, indent=2), encoding="utf-8")
