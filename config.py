"""Simple JSON-based config store."""

from __future__ import annotations

import json
import os
from pathlib import Path

DEFAULT_IMAGE_MODEL = "qwen-image-edit"
IMAGE_MODELS = ("qwen-image-edit", "qwen-image-edit-plus")
DEFAULT_TRANSCRIPTION_MODEL = "qwen-omni-turbo-realtime"
DEFAULT_HISTORY_DEPTH = 50
DEFAULT_SYSTEM_INSTRUCTION = (
    "Anda adalah transkrip bot. Dengar suara pengguna dan tukarkan kepada teks "
    "Bahasa Melayu KL yang santai (slang KL). Jangan jawab, jangan borak. "
    "Tulis apa yang didengar sahaja secara direct."
)
DEFAULT_PROMPT_SUFFIX = (
    "Sila gunakan Bahasa Melayu KL jika ada teks dalam imej. "
    "Gunakan input ini sebagai konteks."
)


class JsonConfigStore:
    def __init__(self, path: Path | None = None) -> None:
        self._path = path or Path.home() / ".config" / "codraw" / "config.json"
        self._path.parent.mkdir(parents=True, exist_ok=True)

    def get_api_key(self) -> str:
        data = self._read_all()
        return str(data.get("api_key", "")) or os.getenv("DASHSCOPE_API_KEY", "")

    def set_api_key(self, key: str) -> None:
        self._set("api_key", key)

    def get_image_model(self) -> str:
        data = self._read_all()
        return str(data.get("image_model", DEFAULT_IMAGE_MODEL))

    def set_image_model(self, model: str) -> None:
        self._set("image_model", model)

    def get_transcription_model(self) -> str:
        data = self._read_all()
        return str(data.get("transcription_model", DEFAULT_TRANSCRIPTION_MODEL))

    def get_history_depth(self) -> int:
        data = self._read_all()
        try:
            depth = int(data.get("history_depth", DEFAULT_HISTORY_DEPTH))
        except (TypeError, ValueError):
            return DEFAULT_HISTORY_DEPTH
        return depth if depth > 0 else DEFAULT_HISTORY_DEPTH

    def get_export_dir(self) -> Path:
        data = self._read_all()
        value = data.get("export_dir")
        return Path(value).expanduser() if value else Path.home() / "Downloads"

    def get_system_instruction(self) -> str:
        data = self._read_all()
        return str(data.get("system_instruction", DEFAULT_SYSTEM_INSTRUCTION))

    def get_prompt_suffix(self) -> str:
        data = self._read_all()
        return str(data.get("prompt_suffix", DEFAULT_PROMPT_SUFFIX))

    def _set(self, key: str, value: object) -> None:
        data = self._read_all()
        data[key] = value
        self._write_all(data)

    def _read_all(self) -> dict:
        if not self._path.exists():
            return {}
        try:
            data = json.loads(self._path.read_text(encoding="utf-8"))
        except (json.JSONDecodeError, OSError):
            return {}
        return data if isinstance(data, dict) else {}

    def _write_all(self, data: dict) -> None:
        self._path.write_text(json.dumps(data, ensure_ascii=False, indent=2), encoding="utf-8")
