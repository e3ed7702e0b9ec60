"""Domain vocabulary shared by adapters, the registry and the orchestrator."""

from __future__ import annotations

from dataclasses import dataclass
from enum import StrEnum


class ModelCategory(StrEnum):
    IMAGE = "image"
    VIDEO = "video"


class ApiFormat(StrEnum):
    DALLE = "dalle"
    GEMINI = "gemini"
    OPENAI_CHAT = "openai-chat"
    MJ_PROXY = "mj-proxy"
    KOUKOUTU = "koukoutu"
    VIDEO_UNIFIED = "video-unified"
    OPENAI_VIDEO = "openai-video"


class ModelType(StrEnum):
    MIDJOURNEY = "midjourney"
    GEMINI = "gemini"
    FLUX = "flux"
    DALLE = "dalle"
    DOUBAO = "doubao"
    GPT4O_IMAGE = "gpt4o-image"
    GPT_IMAGE = "gpt-image"
    SORA_IMAGE = "sora-image"
    GROK_IMAGE = "grok-image"
    QWEN_IMAGE = "qwen-image"
    Z_IMAGE = "z-image"
    KOUKOUTU = "koukoutu"
    JIMENG_VIDEO = "jimeng-video"
    VEO = "veo"
    SORA = "sora"
    GROK_VIDEO = "grok-video"


@dataclass(frozen=True, slots=True)
class ModelTypeMeta:
    type: ModelType
    label: str
    category: ModelCategory
    default_model_name: str
    default_estimated_time: int


MODEL_TYPE_REGISTRY: tuple[ModelTypeMeta, ...] = (
    ModelTypeMeta(ModelType.MIDJOURNEY, "Midjourney", ModelCategory.IMAGE, "midjourney", 60),
    ModelTypeMeta(ModelType.GEMINI, "Gemini 绘图", ModelCategory.IMAGE, "gemini-2.5-flash-image", 15),
    ModelTypeMeta(ModelType.FLUX, "Flux", ModelCategory.IMAGE, "flux-dev", 20),
    ModelTypeMeta(ModelType.DALLE, "DALL-E", ModelCategory.IMAGE, "dall-e-3", 15),
    ModelTypeMeta(
        ModelType.DOUBAO, "豆包绘图", ModelCategory.IMAGE, "doubao-seedream-3-0-t2i-250415", 15
    ),
    ModelTypeMeta(ModelType.GPT4O_IMAGE, "GPT-4o 绘图", ModelCategory.IMAGE, "gpt-4o", 30),
    ModelTypeMeta(ModelType.GPT_IMAGE, "GPT Image", ModelCategory.IMAGE, "gpt-image-1.5-all", 30),
    ModelTypeMeta(ModelType.SORA_IMAGE, "Sora 绘图", ModelCategory.IMAGE, "sora_image", 30),
    ModelTypeMeta(ModelType.GROK_IMAGE, "Grok 绘图", ModelCategory.IMAGE, "grok-4", 30),
    ModelTypeMeta(ModelType.QWEN_IMAGE, "通义万相", ModelCategory.IMAGE, "qwen-image", 30),
    ModelTypeMeta(ModelType.Z_IMAGE, "Z-Image", ModelCategory.IMAGE, "z-image-turbo", 15),
    ModelTypeMeta(ModelType.KOUKOUTU, "抠抠图", ModelCategory.IMAGE, "background-removal", 10),
    ModelTypeMeta(ModelType.JIMENG_VIDEO, "即梦视频", ModelCategory.VIDEO, "jimeng-video-3.0", 120),
    ModelTypeMeta(ModelType.VEO, "Veo", ModelCategory.VIDEO, "veo3.1-fast", 180),
    ModelTypeMeta(ModelType.SORA, "Sora", ModelCategory.VIDEO, "sora-2", 180),
    ModelTypeMeta(ModelType.GROK_VIDEO, "Grok 视频", ModelCategory.VIDEO, "grok-video-3", 120),
)

IMAGE_MODEL_TYPES = frozenset(
    meta.type for meta in MODEL_TYPE_REGISTRY if meta.category is ModelCategory.IMAGE
)
VIDEO_MODEL_TYPES = frozenset(
    meta.type for meta in MODEL_TYPE_REGISTRY if meta.category is ModelCategory.VIDEO
)


def get_model_type_meta(model_type: ModelType | str) -> ModelTypeMeta | None:
    for meta in MODEL_TYPE_REGISTRY:
        if meta.type == model_type:
            return meta
    return None


def get_model_type_label(model_type: ModelType | str) -> str:
    meta = get_model_type_meta(model_type)
    return meta.label if meta else str(model_type)
