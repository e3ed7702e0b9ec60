from __future__ import annotations

import base64

import pytest

from gentask.exceptions import ResourceSaveError
from gentask.media.media_service import ResourceStore, filename_from_locator
from gentask.media.resource_materializer import ResourceMaterializer
from tests.helpers.http_stubs import DummyAsyncClient, DummyResponse, install_client


@pytest.fixture
def materializer(storage_paths) -> ResourceMaterializer:
    return ResourceMaterializer(ResourceStore(storage_paths))


@pytest.mark.asyncio
async def test_local_locator_is_returned_unchanged(monkeypatch, materializer) -> None:
    client = install_client(monkeypatch, DummyAsyncClient())

    result = await materializer.materialize(resource_url="/api/files/existing.png")

    assert result == "/api/files/existing.png"
    assert client.requests == []


@pytest.mark.asyncio
async def test_inline_base64_is_saved(materializer, storage_paths) -> None:
    payload = base64.b64encode(b"jpeg-bytes").decode()

    result = await materializer.materialize(image_base64=payload, mime_type="image/jpeg")

    filename = filename_from_locator(result)
    assert filename is not None and filename.endswith(".jpg")
    assert (storage_paths.uploads / filename).read_bytes() == b"jpeg-bytes"


@pytest.mark.asyncio
async def test_inline_data_url_carries_its_own_mime(materializer) -> None:
    data_url = "data:image/webp;base64," + base64.b64encode(b"w").decode()

    result = await materializer.materialize(image_base64=data_url)

    assert result.endswith(".webp")


@pytest.mark.asyncio
async def test_inline_payload_wins_over_url(monkeypatch, materializer) -> None:
    client = install_client(monkeypatch, DummyAsyncClient())

    result = await materializer.materialize(
        resource_url="https://cdn.test/x.png", image_base64=base64.b64encode(b"i").decode()
    )

    assert result.endswith(".png")
    assert client.requests == []


@pytest.mark.asyncio
async def test_data_url_in_resource_url_is_saved_without_download(monkeypatch, materializer) -> None:
    client = install_client(monkeypatch, DummyAsyncClient())

    result = await materializer.materialize(
        resource_url="data:image/gif;base64," + base64.b64encode(b"g").decode()
    )

    assert result.endswith(".gif")
    assert client.requests == []


@pytest.mark.asyncio
async def test_remote_url_is_downloaded(monkeypatch, materializer) -> None:
    install_client(
        monkeypatch,
        DummyAsyncClient([DummyResponse(200, content=b"png", headers={"content-type": "image/png"})]),
    )

    result = await materializer.materialize(resource_url="https://cdn.test/out")

    assert result.startswith("/api/files/")
    assert result.endswith(".png")


@pytest.mark.asyncio
async def test_failed_download_raises_save_error(monkeypatch, materializer) -> None:
    install_client(monkeypatch, DummyAsyncClient([DummyResponse(500, text="oops")]))

    with pytest.raises(ResourceSaveError):
        await materializer.materialize(resource_url="https://cdn.test/out.png")


@pytest.mark.asyncio
async def test_invalid_base64_raises_save_error(materializer) -> None:
    with pytest.raises(ResourceSaveError):
        await materializer.materialize(image_base64="not base64 at all!!")


@pytest.mark.asyncio
async def test_nothing_to_save_raises(materializer) -> None:
    with pytest.raises(ResourceSaveError):
        await materializer.materialize()
