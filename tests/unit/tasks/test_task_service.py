from __future__ import annotations

import asyncio
import base64
from datetime import datetime, timedelta

import pytest

from gentask.exceptions import (
    InvalidTaskStateError,
    TaskAccessDeniedError,
    TaskNotFoundError,
    TaskValidationError,
)
from gentask.media.media_service import ResourceStore
from gentask.media.resource_materializer import ResourceMaterializer
from gentask.providers.providers_http import ProviderHttp
from gentask.repositories.aimodel_repository import AiModelRepository
from gentask.tasks.task_events import EventBroadcaster
from gentask.tasks.task_models import TaskClassification, TaskInputs
from gentask.tasks.task_service import TaskService
from tests.helpers.http_stubs import DummyAsyncClient, DummyResponse, install_client

PNG_B64 = base64.b64encode(b"png-bytes").decode()


class StepClock:
    def __init__(self, step_seconds: float = 5.0) -> None:
        self.now = datetime(2026, 3, 1, 9, 0, 0)
        self.step = timedelta(seconds=step_seconds)

    def __call__(self) -> datetime:
        self.now += self.step
        return self.now


@pytest.fixture
def broadcaster() -> EventBroadcaster:
    return EventBroadcaster()


@pytest.fixture
def service(task_repo, upstream_repo, aimodel_repo, storage_paths, broadcaster) -> TaskService:
    store = ResourceStore(storage_paths)
    return TaskService(
        task_repo=task_repo,
        upstream_repo=upstream_repo,
        aimodel_repo=aimodel_repo,
        resource_store=store,
        materializer=ResourceMaterializer(store),
        broadcaster=broadcaster,
        http=ProviderHttp(),
        clock=StepClock(),
    )


def seed_model(
    upstream_repo,
    aimodel_repo,
    *,
    api_format: str,
    model_type: str,
    category: str = "image",
    model_name: str = "model-x",
    user_id: int = 1,
    api_keys: list[dict[str, str]] | None = None,
):
    upstream = upstream_repo.create(
        user_id=user_id,
        name="relay",
        base_url="https://vendor.test",
        api_keys=[{"name": "default", "key": "sk-test"}] if api_keys is None else api_keys,
    )
    return aimodel_repo.create(
        upstream_id=upstream.id,
        category=category,
        model_type=model_type,
        api_format=api_format,
        model_name=model_name,
    )


def classification(aimodel, task_type: str = "image") -> TaskClassification:
    return TaskClassification(
        aimodel_id=aimodel.id,
        model_type=aimodel.model_type,
        api_format=aimodel.api_format,
        task_type=task_type,
    )


def processing_task(
    task_repo,
    aimodel,
    upstream_task_id: str = "mj-1",
    user_id: int = 1,
    *,
    images: list[str] | None = None,
    model_params: dict | None = None,
):
    task = task_repo.create(
        user_id=user_id,
        upstream_id=aimodel.upstream_id,
        aimodel_id=aimodel.id,
        task_type="image",
        model_type=aimodel.model_type,
        api_format=aimodel.api_format,
        model_name=aimodel.model_name,
        prompt="castle",
        images=images or [],
        model_params=model_params,
        status="processing",
        started_at=datetime(2026, 3, 1, 9, 0, 0),
    )
    return task_repo.update(task.id, upstream_task_id=upstream_task_id)


def drain_events(queue) -> list[dict]:
    events = []
    while not queue.empty():
        events.append(queue.get_nowait())
    return events


# ----------------------------------------------------------------------
# Creation and validation


def test_create_task_persists_pending_and_emits(service, upstream_repo, aimodel_repo, broadcaster) -> None:
    aimodel = seed_model(upstream_repo, aimodel_repo, api_format="dalle", model_type="dalle", model_name="dall-e-3")
    queue = broadcaster.subscribe(1)

    task = service.create_task(1, classification(aimodel), TaskInputs(prompt="a kite", unique_id="u-1"))

    assert task.status == "pending"
    assert task.model_name == "dall-e-3"
    assert task.unique_id == "u-1"
    events = drain_events(queue)
    assert [event["event"] for event in events] == ["task.created"]
    assert events[0]["data"]["task"]["id"] == task.id


def test_create_task_rejects_foreign_or_missing_model(service, upstream_repo, aimodel_repo) -> None:
    foreign = seed_model(upstream_repo, aimodel_repo, api_format="dalle", model_type="dalle", user_id=2)

    with pytest.raises(TaskValidationError, match="模型配置不存在"):
        service.create_task(1, classification(foreign), TaskInputs(prompt="x"))

    missing = TaskClassification(aimodel_id=999, model_type="dalle", api_format="dalle")
    with pytest.raises(TaskValidationError, match="模型配置不存在"):
        service.create_task(1, missing, TaskInputs(prompt="x"))


@pytest.mark.parametrize(
    ("classification_values", "inputs", "message"),
    [
        ({"model_type": "dalle", "api_format": "dalle", "task_type": "audio"}, TaskInputs(prompt="x"), "无效的任务类型"),
        ({"model_type": "veo", "api_format": "video-unified", "task_type": "image"}, TaskInputs(prompt="x"), "模型类型与任务类型不匹配"),
        ({"model_type": "dalle", "api_format": "stable-diffusion"}, TaskInputs(prompt="x"), "不支持的 API 格式"),
        ({"model_type": "dalle", "api_format": "video-unified"}, TaskInputs(prompt="x"), "API 格式与任务类型不匹配"),
        ({"model_type": "koukoutu", "api_format": "koukoutu"}, TaskInputs(), "抠抠图 API 需要上传图片"),
        ({"model_type": "dalle", "api_format": "dalle"}, TaskInputs(prompt="x", images=["a", "b"], operation="blend"), "混合模式仅支持 MJ-Proxy 格式"),
        ({"model_type": "midjourney", "api_format": "mj-proxy"}, TaskInputs(images=["a"], operation="blend"), "混合模式至少需要 2 张图片"),
        ({"model_type": "veo", "api_format": "video-unified", "task_type": "video"}, TaskInputs(prompt="  "), "视频任务需要输入提示词"),
        ({"model_type": "dalle", "api_format": "dalle"}, TaskInputs(prompt=""), "请输入提示词"),
    ],
)
def test_validate_inputs(service, classification_values, inputs, message) -> None:
    values = {"aimodel_id": 1, "task_type": "image"}
    values.update(classification_values)

    with pytest.raises(TaskValidationError, match=message):
        service.validate_inputs(TaskClassification(**values), inputs)


def test_validate_inputs_accepts_promptless_background_removal(service) -> None:
    service.validate_inputs(
        TaskClassification(aimodel_id=1, model_type="koukoutu", api_format="koukoutu"),
        TaskInputs(images=["/api/files/in.png"]),
    )


def test_blend_on_mj_with_two_images_needs_no_prompt(service) -> None:
    service.validate_inputs(
        TaskClassification(aimodel_id=1, model_type="midjourney", api_format="mj-proxy"),
        TaskInputs(images=["a", "b"], operation="blend"),
    )


# ----------------------------------------------------------------------
# Synchronous providers


@pytest.mark.asyncio
async def test_sync_success_stores_resource_and_updates_estimate(
    monkeypatch, service, upstream_repo, aimodel_repo, storage_paths
) -> None:
    client = install_client(
        monkeypatch,
        DummyAsyncClient([DummyResponse(200, {"data": [{"b64_json": PNG_B64}]})]),
    )
    aimodel = seed_model(upstream_repo, aimodel_repo, api_format="dalle", model_type="dalle", model_name="dall-e-3")
    task = service.create_task(1, classification(aimodel), TaskInputs(prompt="a kite"))

    await service.submit_task(task.id)

    done = service.get_task(task.id)
    assert done.status == "success"
    assert done.resource_url.startswith("/api/files/")
    assert done.progress == "100%"
    assert done.error is None
    assert done.duration_seconds == 5.0
    filename = done.resource_url.rsplit("/", 1)[-1]
    assert (storage_paths.uploads / filename).read_bytes() == b"png-bytes"
    assert aimodel_repo.get(aimodel.id).estimated_time == 5
    assert client.requests[0]["headers"]["Authorization"] == "Bearer sk-test"


@pytest.mark.asyncio
async def test_content_policy_rejection_is_classified(monkeypatch, service, upstream_repo, aimodel_repo) -> None:
    install_client(
        monkeypatch,
        DummyAsyncClient(
            [
                DummyResponse(
                    400,
                    {"error": {"message": "Your request was rejected as a result of our safety system", "code": "content_policy_violation"}},
                )
            ]
        ),
    )
    aimodel = seed_model(upstream_repo, aimodel_repo, api_format="dalle", model_type="dalle")
    task = service.create_task(1, classification(aimodel), TaskInputs(prompt="something"))

    await service.submit_task(task.id)

    failed = service.get_task(task.id)
    assert failed.status == "failed"
    assert failed.error == "内容被安全过滤器拒绝"
    assert failed.resource_url is None


@pytest.mark.asyncio
async def test_missing_api_key_fails_before_any_request(monkeypatch, service, upstream_repo, aimodel_repo) -> None:
    client = install_client(monkeypatch, DummyAsyncClient())
    aimodel = seed_model(upstream_repo, aimodel_repo, api_format="dalle", model_type="dalle", api_keys=[])
    task = service.create_task(1, classification(aimodel), TaskInputs(prompt="x"))

    await service.submit_task(task.id)

    failed = service.get_task(task.id)
    assert failed.status == "failed"
    assert failed.error == "上游 relay 未配置 API 密钥"
    assert client.requests == []


@pytest.mark.asyncio
async def test_local_reference_image_is_inlined_for_gemini(
    monkeypatch, service, upstream_repo, aimodel_repo
) -> None:
    client = install_client(
        monkeypatch,
        DummyAsyncClient(
            [
                DummyResponse(
                    200,
                    {"candidates": [{"content": {"parts": [{"inlineData": {"mimeType": "image/png", "data": PNG_B64}}]}}]},
                )
            ]
        ),
    )
    stored = service.resource_store.save(b"reference", "png")
    aimodel = seed_model(upstream_repo, aimodel_repo, api_format="gemini", model_type="gemini")
    task = service.create_task(
        1, classification(aimodel), TaskInputs(prompt="restyle", images=[f"/api/files/{stored}"])
    )

    await service.submit_task(task.id)

    parts = client.requests[0]["json"]["contents"][0]["parts"]
    assert parts[1]["inlineData"]["data"] == base64.b64encode(b"reference").decode()
    assert service.get_task(task.id).status == "success"


@pytest.mark.asyncio
async def test_local_reference_becomes_public_url_when_supported(
    monkeypatch, service, upstream_repo, aimodel_repo
) -> None:
    client = install_client(
        monkeypatch, DummyAsyncClient([DummyResponse(200, {"data": [{"b64_json": PNG_B64}]})])
    )
    service.public_url = "https://app.test/"
    aimodel = seed_model(upstream_repo, aimodel_repo, api_format="dalle", model_type="dalle", model_name="dall-e-3")
    task = service.create_task(
        1, classification(aimodel), TaskInputs(prompt="edit", images=["/api/files/ref.png"])
    )

    await service.submit_task(task.id)

    assert client.requests[0]["json"]["image"] == "https://app.test/api/files/ref.png"


@pytest.mark.asyncio
async def test_unreachable_remote_reference_fails_the_task(
    monkeypatch, service, upstream_repo, aimodel_repo
) -> None:
    client = install_client(monkeypatch, DummyAsyncClient([DummyResponse(404, text="gone")]))
    aimodel = seed_model(upstream_repo, aimodel_repo, api_format="gemini", model_type="gemini")
    task = service.create_task(
        1, classification(aimodel), TaskInputs(prompt="x", images=["https://elsewhere.test/ref.png"])
    )

    await service.submit_task(task.id)

    failed = service.get_task(task.id)
    assert failed.status == "failed"
    assert failed.error == "参考图下载失败: https://elsewhere.test/ref.png"
    assert [request["method"] for request in client.requests] == ["GET"]


# ----------------------------------------------------------------------
# Asynchronous providers


@pytest.mark.asyncio
async def test_async_task_lifecycle(monkeypatch, service, upstream_repo, aimodel_repo, broadcaster) -> None:
    fetches = [
        DummyResponse(200, {"status": "IN_PROGRESS", "progress": "45%"}),
        DummyResponse(
            200,
            {
                "status": "SUCCESS",
                "progress": "100%",
                "imageUrl": "https://cdn.mj.test/grid.png",
                "buttons": [{"customId": "MJ::JOB::upsample::1", "label": "U1"}],
            },
        ),
    ]

    def handler(method, url, kwargs):
        if url.endswith("/mj/submit/imagine"):
            return DummyResponse(200, {"code": 1, "result": "mj-1"})
        if url.endswith("/mj/task/mj-1/fetch"):
            return fetches.pop(0)
        if url == "https://cdn.mj.test/grid.png":
            return DummyResponse(200, content=b"grid", headers={"content-type": "image/png"})
        raise AssertionError(f"unexpected {method} {url}")

    install_client(monkeypatch, DummyAsyncClient(handler=handler))
    aimodel = seed_model(upstream_repo, aimodel_repo, api_format="mj-proxy", model_type="midjourney")
    task = service.create_task(1, classification(aimodel), TaskInputs(prompt="castle"))
    queue = broadcaster.subscribe(1)

    await service.submit_task(task.id)
    submitted = service.get_task(task.id)
    assert submitted.status == "processing"
    assert submitted.upstream_task_id == "mj-1"

    running = await service.sync_task_status(task.id)
    assert running.status == "processing"
    assert running.progress == "45%"

    done = await service.sync_task_status(task.id)
    assert done.status == "success"
    assert done.resource_url.startswith("/api/files/")
    assert done.buttons[0]["customId"] == "MJ::JOB::upsample::1"
    assert done.duration_seconds > 0

    statuses = [event["data"]["task"]["status"] for event in drain_events(queue)]
    assert statuses == ["submitting", "processing", "processing", "success"]


@pytest.mark.asyncio
async def test_sync_status_is_idempotent_after_terminal(monkeypatch, service, task_repo, upstream_repo, aimodel_repo) -> None:
    client = install_client(monkeypatch, DummyAsyncClient())
    aimodel = seed_model(upstream_repo, aimodel_repo, api_format="mj-proxy", model_type="midjourney")
    task = processing_task(task_repo, aimodel)
    task_repo.update(task.id, status="success", resource_url="/api/files/done.png")

    first = await service.sync_task_status(task.id)
    second = await service.sync_task_status(task.id)

    assert first == second
    assert client.requests == []


@pytest.mark.asyncio
async def test_sync_status_is_idempotent_while_processing(
    monkeypatch, service, task_repo, upstream_repo, aimodel_repo, broadcaster
) -> None:
    client = install_client(
        monkeypatch,
        DummyAsyncClient(
            [
                DummyResponse(200, {"status": "IN_PROGRESS", "progress": "45%"}),
                DummyResponse(200, {"status": "IN_PROGRESS", "progress": "45%"}),
            ]
        ),
    )
    aimodel = seed_model(upstream_repo, aimodel_repo, api_format="mj-proxy", model_type="midjourney")
    task = processing_task(task_repo, aimodel)
    queue = broadcaster.subscribe(1)

    first = await service.sync_task_status(task.id)
    second = await service.sync_task_status(task.id)

    assert first.status == "processing"
    assert first.progress == "45%"
    assert first == second
    assert second.updated_at == first.updated_at
    assert len(drain_events(queue)) == 1
    assert [request["url"] for request in client.requests] == [
        "https://vendor.test/mj/task/mj-1/fetch",
        "https://vendor.test/mj/task/mj-1/fetch",
    ]


@pytest.mark.asyncio
async def test_concurrent_syncs_download_and_record_once(
    monkeypatch, service, task_repo, upstream_repo, aimodel_repo
) -> None:
    downloads = []

    async def slow_download():
        await asyncio.sleep(0.01)
        return DummyResponse(200, content=b"grid", headers={"content-type": "image/png"})

    def handler(method, url, kwargs):
        if url.endswith("/mj/task/mj-1/fetch"):
            return DummyResponse(200, {"status": "SUCCESS", "imageUrl": "https://cdn.mj.test/grid.png"})
        if url == "https://cdn.mj.test/grid.png":
            downloads.append(url)
            return slow_download()
        raise AssertionError(f"unexpected {method} {url}")

    recorded = []
    original_update = AiModelRepository.update_estimated_time

    def counting_update(self, aimodel_id, seconds):
        recorded.append(seconds)
        return original_update(self, aimodel_id, seconds)

    monkeypatch.setattr(AiModelRepository, "update_estimated_time", counting_update)
    install_client(monkeypatch, DummyAsyncClient(handler=handler))
    aimodel = seed_model(upstream_repo, aimodel_repo, api_format="mj-proxy", model_type="midjourney")
    task = processing_task(task_repo, aimodel)

    first, second = await asyncio.gather(
        service.sync_task_status(task.id), service.sync_task_status(task.id)
    )

    assert first.status == "success"
    assert second == first
    assert len(downloads) == 1
    assert len(recorded) == 1
    assert service._sync_locks == {}


@pytest.mark.asyncio
async def test_unsupported_format_fails_with_localized_message(service, task_repo, upstream_repo, aimodel_repo) -> None:
    aimodel = seed_model(upstream_repo, aimodel_repo, api_format="dalle", model_type="dalle")
    task = task_repo.create(
        user_id=1,
        upstream_id=aimodel.upstream_id,
        aimodel_id=aimodel.id,
        task_type="image",
        model_type="dalle",
        api_format="stable-x",
        model_name="sd",
        prompt="x",
    )

    await service.submit_task(task.id)

    failed = service.get_task(task.id)
    assert failed.status == "failed"
    assert failed.error == "不支持的 API 格式: stable-x"


@pytest.mark.asyncio
async def test_query_error_keeps_task_unchanged(monkeypatch, service, task_repo, upstream_repo, aimodel_repo) -> None:
    install_client(monkeypatch, DummyAsyncClient([DummyResponse(500, text="upstream exploded")]))
    aimodel = seed_model(upstream_repo, aimodel_repo, api_format="mj-proxy", model_type="midjourney")
    task = processing_task(task_repo, aimodel)

    result = await service.sync_task_status(task.id)

    assert result == task
    assert service.get_task(task.id).status == "processing"


@pytest.mark.asyncio
async def test_vendor_failure_reason_is_recorded(monkeypatch, service, task_repo, upstream_repo, aimodel_repo) -> None:
    install_client(
        monkeypatch,
        DummyAsyncClient([DummyResponse(200, {"status": "FAILURE", "failReason": "quota exceeded for account"})]),
    )
    aimodel = seed_model(upstream_repo, aimodel_repo, api_format="mj-proxy", model_type="midjourney")
    task = processing_task(task_repo, aimodel)

    result = await service.sync_task_status(task.id)

    assert result.status == "failed"
    assert result.error == "API 配额已用尽"


@pytest.mark.asyncio
async def test_success_without_resource_is_empty_response(monkeypatch, service, task_repo, upstream_repo, aimodel_repo) -> None:
    install_client(monkeypatch, DummyAsyncClient([DummyResponse(200, {"status": "SUCCESS"})]))
    aimodel = seed_model(upstream_repo, aimodel_repo, api_format="mj-proxy", model_type="midjourney")
    task = processing_task(task_repo, aimodel)

    result = await service.sync_task_status(task.id)

    assert result.status == "failed"
    assert result.error == "未收到有效响应"


@pytest.mark.asyncio
async def test_unsaved_resource_fails_with_save_error(monkeypatch, service, task_repo, upstream_repo, aimodel_repo) -> None:
    def handler(method, url, kwargs):
        if url.endswith("/fetch"):
            return DummyResponse(200, {"status": "SUCCESS", "imageUrl": "https://cdn.mj.test/lost.png"})
        return DummyResponse(404, text="not found")

    install_client(monkeypatch, DummyAsyncClient(handler=handler))
    aimodel = seed_model(upstream_repo, aimodel_repo, api_format="mj-proxy", model_type="midjourney")
    task = processing_task(task_repo, aimodel)

    result = await service.sync_task_status(task.id)

    assert result.status == "failed"
    assert result.error == "图片保存失败"
    assert result.resource_url is None
    assert aimodel_repo.get(aimodel.id).estimated_time == 60


# ----------------------------------------------------------------------
# Cancellation and retry


@pytest.mark.asyncio
async def test_cancel_interrupts_running_call(monkeypatch, service, upstream_repo, aimodel_repo) -> None:
    started = asyncio.Event()

    async def never_answers():
        started.set()
        await asyncio.sleep(3600)

    install_client(monkeypatch, DummyAsyncClient(handler=lambda *_: never_answers()))
    aimodel = seed_model(upstream_repo, aimodel_repo, api_format="dalle", model_type="dalle")
    task = service.create_task(1, classification(aimodel), TaskInputs(prompt="slow"))

    service.spawn_submission(task.id)
    await asyncio.wait_for(started.wait(), timeout=5)
    cancelled, aborted = service.cancel_task(task.id, 1)
    await service.drain()

    assert aborted is True
    assert cancelled.status == "cancelled"
    final = service.get_task(task.id)
    assert final.status == "cancelled"
    assert final.error == "用户取消"
    assert not service.inflight.is_inflight(task.id)


@pytest.mark.asyncio
async def test_cancel_before_submission_starts(monkeypatch, service, upstream_repo, aimodel_repo) -> None:
    client = install_client(monkeypatch, DummyAsyncClient())
    aimodel = seed_model(upstream_repo, aimodel_repo, api_format="dalle", model_type="dalle")
    task = service.create_task(1, classification(aimodel), TaskInputs(prompt="x"))

    _, aborted = service.cancel_task(task.id, 1)
    await service.submit_task(task.id)

    assert aborted is False
    assert service.get_task(task.id).status == "cancelled"
    assert client.requests == []


def test_cancel_rejects_terminal_task(service, task_repo, upstream_repo, aimodel_repo) -> None:
    aimodel = seed_model(upstream_repo, aimodel_repo, api_format="mj-proxy", model_type="midjourney")
    task = processing_task(task_repo, aimodel)
    task_repo.update(task.id, status="failed", error="boom")

    with pytest.raises(InvalidTaskStateError):
        service.cancel_task(task.id, 1)


@pytest.mark.asyncio
async def test_retry_resets_and_resubmits(monkeypatch, service, task_repo, upstream_repo, aimodel_repo) -> None:
    install_client(
        monkeypatch, DummyAsyncClient([DummyResponse(200, {"data": [{"url": "data:image/png;base64," + PNG_B64}]})])
    )
    aimodel = seed_model(upstream_repo, aimodel_repo, api_format="dalle", model_type="dalle")
    task = service.create_task(1, classification(aimodel), TaskInputs(prompt="again"))
    task_repo.update(task.id, status="failed", error="网络连接失败", progress="10%")

    retried = service.retry_task(task.id, 1)

    assert retried.status == "pending"
    assert retried.error is None
    assert retried.progress is None
    assert retried.started_at is None
    assert retried.created_at == service.clock.now

    await service.drain()
    assert service.get_task(task.id).status == "success"


@pytest.mark.parametrize("status", ["pending", "processing", "success"])
def test_retry_rejects_non_failed_tasks(service, task_repo, upstream_repo, aimodel_repo, status) -> None:
    aimodel = seed_model(upstream_repo, aimodel_repo, api_format="mj-proxy", model_type="midjourney")
    task = processing_task(task_repo, aimodel)
    changes = {"status": status}
    if status == "success":
        changes["resource_url"] = "/api/files/x.png"
    task_repo.update(task.id, **changes)

    with pytest.raises(InvalidTaskStateError):
        service.retry_task(task.id, 1)


# ----------------------------------------------------------------------
# Button actions


@pytest.mark.asyncio
async def test_execute_action_creates_processing_child(monkeypatch, service, task_repo, upstream_repo, aimodel_repo) -> None:
    client = install_client(
        monkeypatch, DummyAsyncClient([DummyResponse(200, {"code": 1, "result": "mj-2"})])
    )
    aimodel = seed_model(upstream_repo, aimodel_repo, api_format="mj-proxy", model_type="midjourney")
    parent = processing_task(
        task_repo, aimodel, images=["/api/files/ref.png"], model_params={"stylize": 250}
    )

    child = await service.execute_action(parent.id, "MJ::JOB::upsample::1", 1)

    assert child.id != parent.id
    assert child.prompt == parent.prompt
    assert child.images == ["/api/files/ref.png"]
    assert child.model_params == {"stylize": 250}
    assert child.status == "processing"
    assert child.upstream_task_id == "mj-2"
    assert child.started_at is not None
    assert client.requests[0]["json"] == {"taskId": "mj-1", "customId": "MJ::JOB::upsample::1"}


@pytest.mark.asyncio
async def test_execute_action_failure_marks_child_failed(monkeypatch, service, task_repo, upstream_repo, aimodel_repo) -> None:
    install_client(
        monkeypatch, DummyAsyncClient([DummyResponse(200, {"code": 21, "description": "rate limit"})])
    )
    aimodel = seed_model(upstream_repo, aimodel_repo, api_format="mj-proxy", model_type="midjourney")
    parent = processing_task(task_repo, aimodel)

    child = await service.execute_action(parent.id, "MJ::JOB::reroll::0", 1)

    assert child.status == "failed"
    assert child.error == "请求过于频繁，请稍后重试"


@pytest.mark.asyncio
async def test_execute_action_requires_mj(service, task_repo, upstream_repo, aimodel_repo) -> None:
    aimodel = seed_model(upstream_repo, aimodel_repo, api_format="dalle", model_type="dalle")
    parent = service.create_task(1, classification(aimodel), TaskInputs(prompt="x"))

    with pytest.raises(TaskValidationError):
        await service.execute_action(parent.id, "MJ::JOB::upsample::1", 1)


# ----------------------------------------------------------------------
# Ownership, trash and blur


def test_foreign_task_is_denied(service, task_repo, upstream_repo, aimodel_repo) -> None:
    aimodel = seed_model(upstream_repo, aimodel_repo, api_format="mj-proxy", model_type="midjourney", user_id=2)
    task = processing_task(task_repo, aimodel, user_id=2)

    with pytest.raises(TaskAccessDeniedError):
        service.get_task_for_user(task.id, 1)
    with pytest.raises(TaskNotFoundError):
        service.get_task(999)


def test_trash_lifecycle(service, task_repo, upstream_repo, aimodel_repo, broadcaster) -> None:
    aimodel = seed_model(upstream_repo, aimodel_repo, api_format="dalle", model_type="dalle")
    task = service.create_task(1, classification(aimodel), TaskInputs(prompt="x"))
    queue = broadcaster.subscribe(1)

    deleted = service.delete_task(task.id, 1)
    again = service.delete_task(task.id, 1)
    assert deleted.deleted_at is not None
    assert again.deleted_at == deleted.deleted_at
    assert service.list_tasks(1).total == 0
    assert service.list_trash(1).total == 1

    restored = service.restore_task(task.id, 1)
    assert restored.deleted_at is None
    with pytest.raises(InvalidTaskStateError):
        service.restore_task(task.id, 1)

    service.delete_task(task.id, 1)
    assert service.empty_trash(1) == 1
    assert task_repo.get(task.id) is None

    events = [event["event"] for event in drain_events(queue)]
    assert events == ["task.deleted", "task.restored", "task.deleted"]


def test_blur_updates(service, upstream_repo, aimodel_repo, broadcaster) -> None:
    aimodel = seed_model(upstream_repo, aimodel_repo, api_format="dalle", model_type="dalle")
    first = service.create_task(1, classification(aimodel), TaskInputs(prompt="x"))
    second = service.create_task(1, classification(aimodel), TaskInputs(prompt="y"))
    queue = broadcaster.subscribe(1)

    assert service.update_blur(first.id, 1, False).is_blurred is False
    assert service.batch_blur(1, [first.id, second.id, 999], True) == [first.id, second.id]
    assert service.batch_blur(1, [999], True) == []

    events = drain_events(queue)
    assert [event["event"] for event in events] == ["task.blur.updated", "tasks.blur.updated"]
    assert events[1]["data"] == {"task_ids": [first.id, second.id], "is_blurred": True}


def test_task_logs_without_http_logger(service, upstream_repo, aimodel_repo) -> None:
    aimodel = seed_model(upstream_repo, aimodel_repo, api_format="dalle", model_type="dalle")
    task = service.create_task(1, classification(aimodel), TaskInputs(prompt="x"))

    assert service.task_logs(task.id, 1) == []
