import logging
from abc import ABC, abstractmethod
from pathlib import Path
from uuid import uuid4

from app.core.config import settings
from app.core.exceptions import NotFoundError, TransientError

logger = logging.getLogger(__name__)

RECEIPT_PREFIX = "receipt-"
FALLBACK_MEDIA_TYPE = "application/octet-stream"

# raster images only
ALLOWED_RECEIPT_TYPES = {
    "image/png": ".png",
    "image/jpeg": ".jpg",
    "image/webp": ".webp",
    "image/gif": ".gif",
}
_MEDIA_TYPE_BY_SUFFIX = {suffix: media_type for media_type, suffix in ALLOWED_RECEIPT_TYPES.items()}


def normalize_media_type(content_type: str | None) -> str:
    return (content_type or "").split(";")[0].strip().lower()


def build_receipt_name(content_type: str | None) -> str:
    """Name a receipt after its validated media type, never the client filename."""
    suffix = ALLOWED_RECEIPT_TYPES.get(normalize_media_type(content_type))
    if suffix is None:
        raise ValueError(f"Unsupported receipt type {content_type!r}")
    return f"{RECEIPT_PREFIX}{uuid4().hex}{suffix}"


def media_type_for(reference: str) -> str:
    return _MEDIA_TYPE_BY_SUFFIX.get(Path(reference).suffix.lower(), FALLBACK_MEDIA_TYPE)


class ArtifactStore(ABC):
    @abstractmethod
    def save(self, data: bytes, suggested_name: str) -> str:
        raise NotImplementedError

    @abstractmethod
    def path_for(self, reference: str) -> Path:
        raise NotImplementedError

    @abstractmethod
    def delete(self, reference: str) -> bool:
        raise NotImplementedError


class LocalArtifactStore(ArtifactStore):
    def __init__(self, root: str | Path) -> None:
        self._root = Path(root)

    def _resolve(self, reference: str) -> Path:
        if not reference or Path(reference).name != reference or reference in {".", ".."}:
            raise ValueError(f"Invalid artifact reference {reference!r}")
        return self._root / reference

    def save(self, data: bytes, suggested_name: str) -> str:
        target = self._resolve(suggested_name)
        try:
            self._root.mkdir(parents=True, exist_ok=True)
            # "xb" refuses to overwrite an existing artifact
            with target.open("xb") as handle:
                handle.write(data)
        except OSError:
            logger.exception("artifact_write_failed reference=%s", suggested_name)
            raise TransientError("Receipt storage is temporarily unavailable") from None
        return suggested_name

    def path_for(self, reference: str) -> Path:
        try:
            path = self._resolve(reference)
        except ValueError:
            raise NotFoundError("Receipt not found") from None
        if not path.is_file():
            raise NotFoundError("Receipt not found")
        return path

    def delete(self, reference: str) -> bool:
        try:
            self._resolve(reference).unlink(missing_ok=True)
        except (OSError, ValueError):
            logger.warning("artifact_delete_failed reference=%s", reference, exc_info=True)
            return False
        return True


def get_artifact_store() -> ArtifactStore:
    return LocalArtifactStore(settings.upload_dir)
