"""Media classification by file extension."""

from __future__ import annotations

import mimetypes
from typing import Literal, NamedTuple, Optional

ResourceType = Literal["Image", "Sound", "Video", "Text", "Dataset", "Model"]
Motivation = Literal["painting", "supplementing"]


class MediaType(NamedTuple):
    """Resource type, MIME format, and annotation motivation for an extension."""

    type: ResourceType
    format: str
    motivation: Motivation


MEDIA_TYPES: dict[str, MediaType] = {
    "jpg": MediaType("Image", "image/jpeg", "painting"),
    "jpeg": MediaType("Image", "image/jpeg", "painting"),
    "png": MediaType("Image", "image/png", "painting"),
    "webp": MediaType("Image", "image/webp", "painting"),
    "gif": MediaType("Image", "image/gif", "painting"),
    "tif": MediaType("Image", "image/tiff", "painting"),
    "tiff": MediaType("Image", "image/tiff", "painting"),
    "mp3": MediaType("Sound", "audio/mpeg", "painting"),
    "wav": MediaType("Sound", "audio/wav", "painting"),
    "mp4": MediaType("Video", "video/mp4", "painting"),
    "txt": MediaType("Text", "text/plain", "supplementing"),
    "json": MediaType("Dataset", "application/json", "supplementing"),
    "glb": MediaType("Model", "model/gltf-binary", "painting"),
}

DEFAULT_MIME_TYPE = "application/octet-stream"


def file_extension(name: str) -> str:
    _, dot, ext = name.rpartition(".")
    return ext.lower() if dot else ""


def media_type_for(name: str) -> Optional[MediaType]:
    """Return the media classification of ``name`` or ``None`` for unknown extensions."""
    return MEDIA_TYPES.get(file_extension(name))


def mime_type_for(name: str) -> str:
    """Return the MIME type for ``name``, falling back to the platform registry."""
    media = media_type_for(name)
    if media is not None:
        return media.format
    guessed, _ = mimetypes.guess_type(name, strict=False)
    return guessed or DEFAULT_MIME_TYPE


def is_canvas_media(name: str) -> bool:
    """Return True when ``name`` is painted onto a canvas."""
    media = media_type_for(name)
    return media is not None and media.motivation == "painting"


def is_media_of(name: str, resource_type: ResourceType) -> bool:
    media = media_type_for(name)
    return media is not None and media.type == resource_type


__all__ = [
    "MediaType",
    "MEDIA_TYPES",
    "DEFAULT_MIME_TYPE",
    "file_extension",
    "media_type_for",
    "mime_type_for",
    "is_canvas_media",
    "is_media_of",
]
