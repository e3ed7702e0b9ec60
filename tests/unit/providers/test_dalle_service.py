from __future__ import annotations

import base64

import pytest

from gentask.providers.model_types import ApiFormat, ModelType
from gentask.providers.providers_base import GenerateParams
from gentask.providers.providers_factory import get_provider
from gentask.providers.providers_http import ProviderHttp
from tests.helpers.http_stubs import DummyAsyncClient, DummyResponse, install_client

PNG_DATA_URL = "data:image/png;base64," + base64.b64encode(b"png-bytes").decode()


def make_service():
    return get_provider(ApiFormat.DALLE).create_service(
        "https://api.vendor.test/", "sk-test", ProviderHttp()
    )


def make_params(**overrides) -> GenerateParams:
    values = {
        "task_id": 1,
        "prompt": "a lighthouse",
        "model_name": "dall-e-3",
        "model_type": ModelType.DALLE,
    }
    values.update(overrides)
    return GenerateParams(**values)


@pytest.mark.asyncio
async def test_text_to_image_posts_generation_body(monkeypatch) -> None:
    client = install_client(
        monkeypatch,
        DummyAsyncClient([DummyResponse(200, {"data": [{"url": "https://cdn.test/a.png"}]})]),
    )

    result = await make_service().generate(
        make_params(model_params={"quality": "hd", "style": "vivid"})
    )

    assert result.success is True
    assert result.resource_url == "https://cdn.test/a.png"
    request = client.requests[0]
    assert request["url"] == "https://api.vendor.test/v1/images/generations"
    assert request["headers"]["Authorization"] == "Bearer sk-test"
    assert request["json"] == {
        "model": "dall-e-3",
        "prompt": "a lighthouse",
        "n": 1,
        "response_format": "url",
        "size": "1024x1024",
        "quality": "hd",
        "style": "vivid",
    }


@pytest.mark.asyncio
async def test_doubao_omits_default_size_and_keeps_seed(monkeypatch) -> None:
    client = install_client(
        monkeypatch,
        DummyAsyncClient([DummyResponse(200, {"data": [{"url": "https://cdn.test/b.png"}]})]),
    )

    await make_service().generate(
        make_params(
            model_type=ModelType.DOUBAO,
            model_name="doubao-seedream",
            model_params={"seed": 42, "watermark": False},
        )
    )

    body = client.requests[0]["json"]
    assert "size" not in body
    assert body["seed"] == 42
    assert body["watermark"] is False


@pytest.mark.asyncio
async def test_flux_reference_image_uses_multipart_edit(monkeypatch) -> None:
    client = install_client(
        monkeypatch,
        DummyAsyncClient([DummyResponse(200, {"data": [{"b64_json": "aGVsbG8="}]})]),
    )

    result = await make_service().generate(
        make_params(
            model_type=ModelType.FLUX,
            model_name="flux-kontext",
            images=[PNG_DATA_URL],
            model_params={"aspect_ratio": "16:9"},
        )
    )

    assert result.success is True
    assert result.image_base64 == "aGVsbG8="
    request = client.requests[0]
    assert request["url"] == "https://api.vendor.test/v1/images/edits"
    assert request["data"]["response_format"] == "b64_json"
    assert request["data"]["aspect_ratio"] == "16:9"
    filename, content, mime_type = request["files"]["image"]
    assert content == b"png-bytes"
    assert mime_type == "image/png"


@pytest.mark.asyncio
async def test_flux_rejects_non_data_url_reference() -> None:
    result = await make_service().generate(
        make_params(model_type=ModelType.FLUX, images=["https://example.test/a.png"])
    )

    assert result.success is False
    assert result.error == "请求参数无效"


@pytest.mark.asyncio
async def test_empty_data_list_is_empty_response(monkeypatch) -> None:
    install_client(monkeypatch, DummyAsyncClient([DummyResponse(200, {"data": []})]))

    result = await make_service().generate(make_params())

    assert result.success is False
    assert result.error == "未收到有效响应"


@pytest.mark.asyncio
async def test_vendor_error_is_classified(monkeypatch) -> None:
    install_client(
        monkeypatch,
        DummyAsyncClient(
            [DummyResponse(429, {"error": {"message": "Rate limit reached for requests"}})]
        ),
    )

    result = await make_service().generate(make_params())

    assert result.success is False
    assert result.error == "请求过于频繁，请稍后重试"
