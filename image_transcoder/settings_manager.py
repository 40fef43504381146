from __future__ import annotations

import json
import os
from pathlib import Path
from typing import TYPE_CHECKING, Any

from .logger import get_logger

if TYPE_CHECKING:
    from .engine.types import ExternalEncoderPreset

_logger = get_logger("settings")

SETTINGS_ENV = "IMAGE_TRANSCODER_SETTINGS"


class SettingsManager:
    """JSON-file backed engine settings.

    The file is optional; a missing or unreadable file means DEFAULTS apply.
    Without an explicit path, IMAGE_TRANSCODER_SETTINGS names the file, and
    with neither the settings live in memory only.
    """

    DEFAULTS: dict[str, Any] = {
        "external_timeout_s": 30.0,
        "pngquant_executable_path": "",
        "pngquant_quality": "65-80",
        "ffmpeg_executable_path": "",
        "ffmpeg_crf": 23,
        "ffmpeg_preset": "medium",
    }

    def __init__(self, settings_path: str | None = None):
        raw = settings_path if settings_path is not None else os.getenv(SETTINGS_ENV, "")
        self.settings_path: Path | None = Path(raw).expanduser() if raw else None
        self._values: dict[str, Any] = {}
        self.load()

    def load(self) -> None:
        self._values = {}
        path = self.settings_path
        if path is None or not path.is_file():
            return
        try:
            loaded = json.loads(path.read_text(encoding="utf-8"))
        except (OSError, ValueError) as e:
            _logger.warning("settings load failed, using defaults: %s", e)
            return
        if not isinstance(loaded, dict):
            _logger.warning("settings file is not a JSON object: %s", path)
            return
        self._values = loaded
        _logger.debug("settings loaded: %s (%d keys)", path, len(loaded))

    def save(self) -> None:
        path = self.settings_path
        if path is None:
            return
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            path.write_text(json.dumps(self._values, ensure_ascii=False, indent=2), encoding="utf-8")
        except OSError as e:
            _logger.error("settings save failed: %s", e)
            return
        _logger.debug("settings saved: %s", path)

    def get(self, key: str, default: Any = None) -> Any:
        if key in self._values:
            return self._values[key]
        return default if default is not None else self.DEFAULTS.get(key)

    def has(self, key: str) -> bool:
        return key in self._values

    def set(self, key: str, value: Any) -> None:
        self.update({key: value})

    def update(self, values: dict[str, Any]) -> None:
        """Set several keys and write the file once."""
        self._values.update(values)
        self.save()

    @property
    def data(self) -> dict[str, Any]:
        return self._values

    def _number(self, key: str, cast: type, *, positive: bool = False) -> Any:
        fallback = cast(self.DEFAULTS[key])
        try:
            value = cast(self.get(key))
        except (TypeError, ValueError):
            _logger.warning("invalid %s: %r", key, self.get(key))
            return fallback
        if positive and value <= 0:
            return fallback
        return value

    @property
    def external_timeout(self) -> float:
        return self._number("external_timeout_s", float, positive=True)

    def default_preset(self) -> ExternalEncoderPreset:
        from .engine.types import ExternalEncoderPreset

        return ExternalEncoderPreset(
            pngquant_executable_path=str(self.get("pngquant_executable_path") or ""),
            pngquant_quality=str(self.get("pngquant_quality") or self.DEFAULTS["pngquant_quality"]),
            ffmpeg_executable_path=str(self.get("ffmpeg_executable_path") or ""),
            ffmpeg_crf=self._number("ffmpeg_crf", int),
            ffmpeg_preset=str(self.get("ffmpeg_preset") or self.DEFAULTS["ffmpeg_preset"]),
        )
