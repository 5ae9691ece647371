"""Tests for DashscopeImageGenerator."""

from __future__ import annotations

import base64
from unittest.mock import MagicMock, patch

import pytest
import requests

from errors import AUTH_FAILED, GENERATION_FAILED, NETWORK_ERROR, GenerationError
from generator import DashscopeImageGenerator, to_data_url
from models import NOT_FOUND, GenerationRequest, ImageFound

REQUEST = GenerationRequest(model="qwen-image-edit", image_bytes=b"\x89PNG-canvas", instruction="make it blue")


def _response(content: list, status_code: int = 200) -> dict:
    return {
        "status_code": status_code,
        "output": {"choices": [{"message": {"role": "assistant", "content": content}}]},
    }


@patch("generator.dashscope")
def test_request_carries_image_then_text(mock_ds: MagicMock) -> None:
    mock_ds.MultiModalConversation.call.return_value = _response([{"text": "no"}])

    DashscopeImageGenerator(api_key="test-key").generate(REQUEST)

    kwargs = mock_ds.MultiModalConversation.call.call_args.kwargs
    assert kwargs["model"] == "qwen-image-edit"
    assert kwargs["api_key"] == "test-key"
    parts = kwargs["messages"][0]["content"]
    assert parts == [
        {"image": to_data_url(b"\x89PNG-canvas", "image/png")},
        {"text": "make it blue"},
    ]


@patch("generator.dashscope")
def test_inline_image_is_found(mock_ds: MagicMock) -> None:
    payload = base64.b64encode(b"png-bytes").decode("ascii")
    mock_ds.MultiModalConversation.call.return_value = _response(
        [{"text": "here you go"}, {"image": f"data:image/webp;base64,{payload}"}]
    )

    result = DashscopeImageGenerator(api_key="test-key").generate(REQUEST)

    assert result == ImageFound(image_bytes=b"png-bytes", mime_type="image/webp")


@patch("generator.requests.get")
@patch("generator.dashscope")
def test_remote_image_is_downloaded(mock_ds: MagicMock, mock_get: MagicMock) -> None:
    mock_ds.MultiModalConversation.call.return_value = _response(
        [{"image": "https://example.com/out.png"}]
    )
    mock_get.return_value = MagicMock(content=b"remote-png", headers={"Content-Type": "image/png"})

    result = DashscopeImageGenerator(api_key="test-key").generate(REQUEST)

    assert result == ImageFound(image_bytes=b"remote-png", mime_type="image/png")
    assert mock_get.call_args.args[0] == "https://example.com/out.png"


@patch("generator.requests.get")
@patch("generator.dashscope")
def test_download_failure_is_network_error(mock_ds: MagicMock, mock_get: MagicMock) -> None:
    mock_ds.MultiModalConversation.call.return_value = _response(
        [{"image": "https://example.com/out.png"}]
    )
    mock_get.side_effect = requests.ConnectionError("unreachable")

    with pytest.raises(GenerationError) as info:
        DashscopeImageGenerator(api_key="test-key").generate(REQUEST)
    assert info.value.code == NETWORK_ERROR


@patch("generator.dashscope")
def test_text_only_response_is_not_found(mock_ds: MagicMock) -> None:
    mock_ds.MultiModalConversation.call.return_value = _response([{"text": "cannot draw that"}])
    assert DashscopeImageGenerator(api_key="test-key").generate(REQUEST) is NOT_FOUND


@patch("generator.dashscope")
def test_empty_choices_is_not_found(mock_ds: MagicMock) -> None:
    mock_ds.MultiModalConversation.call.return_value = {"status_code": 200, "output": {"choices": []}}
    assert DashscopeImageGenerator(api_key="test-key").generate(REQUEST) is NOT_FOUND


@patch("generator.dashscope")
def test_error_status_surfaces_embedded_message(mock_ds: MagicMock) -> None:
    mock_ds.MultiModalConversation.call.return_value = {
        "status_code": 400,
        "code": "InvalidParameter",
        "message": 'upstream said {"error":{"code":400,"message":"Image has no content"}}',
    }

    with pytest.raises(GenerationError) as info:
        DashscopeImageGenerator(api_key="test-key").generate(REQUEST)

    assert info.value.code == GENERATION_FAILED
    assert info.value.message == "Image has no content"


@patch("generator.dashscope")
def test_missing_entity_maps_to_auth_failed(mock_ds: MagicMock) -> None:
    mock_ds.MultiModalConversation.call.side_effect = Exception("Requested entity was not found.")

    with pytest.raises(GenerationError) as info:
        DashscopeImageGenerator(api_key="test-key").generate(REQUEST)

    assert info.value.code == AUTH_FAILED
    assert info.value.message == "Requested entity was not found."


@patch("generator.dashscope", None)
def test_dashscope_not_installed() -> None:
    with pytest.raises(GenerationError, match="not installed"):
        DashscopeImageGenerator(api_key="test-key").generate(REQUEST)


@patch("generator.dashscope", MagicMock())
@patch.dict("os.environ", {"DASHSCOPE_API_KEY": ""}, clear=False)
def test_missing_api_key() -> None:
    with pytest.raises(GenerationError) as info:
        DashscopeImageGenerator(api_key="").generate(REQUEST)
    assert info.value.code == AUTH_FAILED
