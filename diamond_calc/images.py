import logging
import uuid
from pathlib import Path

logger = logging.getLogger(__name__)

ALLOWED_IMAGE_TYPES = ["png", "jpg", "jpeg", "webp"]


class LocalImageStore:
    """
    Stores product images on disk and hands back a URL-like path.

    Estimates only keep the returned string, so the store can be swapped for
    a remote bucket without touching the estimate records.
    """

    def __init__(self, root: Path):
        self.root = root

    def upload(self, file_name: str, data: bytes) -> str | None:
        extension = Path(file_name).suffix.lstrip(".").lower() or "jpg"
        target = self.root / f"{uuid.uuid4()}.{extension}"
        try:
            self.root.mkdir(parents=True, exist_ok=True)
            target.write_bytes(data)
        except OSError as exc:
            logger.error("Image upload failed for %s: %s", file_name, exc)
            return None
        return str(target)


def resolve_image_url(store: LocalImageStore, uploaded_file, existing_url: str | None) -> str | None:
    """New upload wins; a failed upload falls back to the existing URL."""
    if uploaded_file is None:
        return existing_url
    url = store.upload(uploaded_file.name, uploaded_file.getvalue())
    return url or existing_url
