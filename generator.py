"""Image generation through DashScope multimodal image-edit models."""

from __future__ import annotations

import base64
import binascii
import logging
import os
from typing import Any

import requests

from errors import AUTH_FAILED, GENERATION_FAILED, NETWORK_ERROR, GenerationError, parse_error_message
from models import NOT_FOUND, GenerationRequest, GenerationResult, ImageFound

try:
    import dashscope
except Exception:  # pragma: no cover
    dashscope = None  # type: ignore

LOGGER = logging.getLogger(__name__)

_AUTH_MARKERS = ("requested entity was not found", "invalidapikey", "invalid api key", "401")


def to_data_url(data: bytes, mime_type: str) -> str:
    return f"data:{mime_type};base64,{base64.b64encode(data).decode('ascii')}"


def _field(obj: Any, name: str) -> Any:
    if isinstance(obj, dict):
        return obj.get(name)
    return getattr(obj, name, None)


class DashscopeImageGenerator:
    def __init__(
        self,
        api_key: str,
        request_timeout_s: float = 120.0,
        download_timeout_s: float = 30.0,
    ) -> None:
        self._api_key = api_key
        self._request_timeout_s = request_timeout_s
        self._download_timeout_s = download_timeout_s

    def generate(self, request: GenerationRequest) -> GenerationResult:
        if dashscope is None:
            raise GenerationError(GENERATION_FAILED, "dashscope is not installed")
        api_key = self._api_key or os.getenv("DASHSCOPE_API_KEY", "")
        if not api_key:
            raise GenerationError(AUTH_FAILED, "No API key configured")

        LOGGER.info("Requesting image from %s (%d bytes in)", request.model, len(request.image_bytes))
        try:
            response = dashscope.MultiModalConversation.call(
                api_key=api_key,
                model=request.model,
                messages=[
                    {
                        "role": "user",
                        "content": [
                            {"image": to_data_url(request.image_bytes, request.mime_type)},
                            {"text": request.instruction},
                        ],
                    }
                ],
                stream=False,
                timeout=self._request_timeout_s,
            )
        except Exception as exc:
            raise self._to_generation_error(str(exc)) from exc

        status = _field(response, "status_code")
        if status is not None and status != 200:
            message = str(_field(response, "message") or _field(response, "code") or f"HTTP {status}")
            raise self._to_generation_error(message)
        return self._extract_image(response)

    def _extract_image(self, response: Any) -> GenerationResult:
        """Return the first image part of the first choice, if any."""
        output = _field(response, "output")
        choices = _field(output, "choices") or []
        if not choices:
            return NOT_FOUND
        message = _field(choices[0], "message")
        content = _field(message, "content") or []
        for part in content:
            ref = _field(part, "image")
            if ref:
                return self._load_image(str(ref))
        return NOT_FOUND

    def _load_image(self, ref: str) -> ImageFound:
        if ref.startswith("data:"):
            header, _, payload = ref.partition(",")
            mime_type = header[5:].split(";")[0] or "image/png"
            return ImageFound(image_bytes=self._b64decode(payload), mime_type=mime_type)
        if ref.startswith(("http://", "https://")):
            try:
                resp = requests.get(ref, timeout=self._download_timeout_s)
                resp.raise_for_status()
            except requests.RequestException as exc:
                raise GenerationError(NETWORK_ERROR, str(exc)) from exc
            mime_type = resp.headers.get("Content-Type", "image/png").split(";")[0]
            return ImageFound(image_bytes=resp.content, mime_type=mime_type)
        return ImageFound(image_bytes=self._b64decode(ref))

    def _b64decode(self, payload: str) -> bytes:
        try:
            return base64.b64decode(payload, validate=True)
        except (binascii.Error, ValueError) as exc:
            raise GenerationError(GENERATION_FAILED, f"invalid image payload: {exc}") from exc

    def _to_generation_error(self, raw: str) -> GenerationError:
        message = parse_error_message(raw)
        low = raw.lower()
        if any(marker in low for marker in _AUTH_MARKERS):
            return GenerationError(AUTH_FAILED, message)
        if "timeout" in low or "connection" in low or "network" in low:
            return GenerationError(NETWORK_ERROR, message)
        return GenerationError(GENERATION_FAILED, message or "An unexpected error occurred.")
