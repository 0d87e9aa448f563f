"""Per-file processing executed by ingest workers."""

from __future__ import annotations

import hashlib
import io
import logging

from PIL import Image, ImageOps, UnidentifiedImageError

from arcstage.config.models import IngestOptions
from arcstage.staging.media import media_type_for, mime_type_for
from arcstage.tree.models import FileHandle

from .models import FileStatus, FileTaskResult

LOGGER = logging.getLogger(__name__)

_ORIENTATION_TAG = 0x0112


class FileProcessor:
    """Detect MIME type, hash, and extract image metadata and thumbnails.

    Instances hold no mutable state and may be shared between workers.
    """

    def __init__(self, options: IngestOptions | None = None) -> None:
        self.options = options or IngestOptions()

    @property
    def max_size_bytes(self) -> int | None:
        if self.options.max_file_size_mb <= 0:
            return None
        return self.options.max_file_size_mb * 1024 * 1024

    def process(self, handle: FileHandle) -> FileTaskResult:
        """Process ``handle`` and return its result.

        Raises:
            OSError: If the content cannot be read.
            ValueError: If an image cannot be decoded.
        """
        mime_type = mime_type_for(handle.name)
        limit = self.max_size_bytes
        if limit is not None and handle.size > limit:
            return FileTaskResult(
                path=handle.path,
                status=FileStatus.SKIPPED,
                mime_type=mime_type,
                error=f"File exceeds {self.options.max_file_size_mb} MB limit",
            )

        data = handle.read_bytes()
        result = FileTaskResult(path=handle.path, status=FileStatus.COMPLETED, mime_type=mime_type)
        result.metadata["size_bytes"] = str(len(data))
        if self.options.calculate_hashes:
            result.sha256 = hashlib.sha256(data).hexdigest()

        media = media_type_for(handle.name)
        if media is not None and media.type == "Image":
            needs_image = self.options.extract_metadata or self.options.generate_thumbnails
            if needs_image:
                self._process_image(data, result)
        return result

    def _process_image(self, data: bytes, result: FileTaskResult) -> None:
        try:
            with Image.open(io.BytesIO(data)) as img:
                img.load()
                result.width, result.height = img.size
                if self.options.extract_metadata:
                    result.metadata["image_mode"] = img.mode
                    orientation = img.getexif().get(_ORIENTATION_TAG)
                    if orientation is not None:
                        result.metadata["image_orientation"] = str(orientation)
                if self.options.generate_thumbnails:
                    result.thumbnail = self._thumbnail(img)
        except (UnidentifiedImageError, OSError) as exc:
            raise ValueError(f"Cannot decode image: {exc}") from exc

    def _thumbnail(self, img: Image.Image) -> bytes:
        preview = ImageOps.exif_transpose(img) or img
        preview = preview.convert("RGB")
        preview.thumbnail((self.options.thumbnail_size, self.options.thumbnail_size))
        buffer = io.BytesIO()
        preview.save(buffer, format="JPEG", quality=85)
        return buffer.getvalue()


__all__ = ["FileProcessor"]
