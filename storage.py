from pathlib import Path
from typing import Iterable
import logging
import secrets

from config import settings

logger = logging.getLogger(__name__)

ALLOWED_IMAGE_TYPES = {
    "image/jpeg": ".jpg",
    "image/png": ".png",
    "image/webp": ".webp",
    "image/gif": ".gif",
}


def media_root() -> Path:
    return Path(settings.media_dir)


def save_donation_image(donation_id: int, content: bytes, content_type: str) -> str:
    """Write an image under the media dir and return its public URL."""
    suffix = ALLOWED_IMAGE_TYPES.get(content_type)
    if suffix is None:
        raise ValueError(f"Unsupported image type: {content_type}")
    folder = media_root() / "donations" / str(donation_id)
    folder.mkdir(parents=True, exist_ok=True)
    name = secrets.token_hex(8) + suffix
    (folder / name).write_bytes(content)
    return f"{settings.media_url.rstrip('/')}/donations/{donation_id}/{name}"


def _path_for_url(url: str) -> Path:
    prefix = settings.media_url.rstrip("/") + "/"
    if not url.startswith(prefix):
        raise ValueError(f"Not a local media URL: {url}")
    relative = url[len(prefix):]
    root = media_root().resolve()
    path = (root / relative).resolve()
    if root not in path.parents:
        raise ValueError(f"Path escapes media dir: {url}")
    return path


def remove_images(urls: Iterable[str]) -> int:
    """Best-effort removal; failures are logged and skipped."""
    removed = 0
    for url in urls:
        try:
            _path_for_url(url).unlink()
            removed += 1
        except (OSError, ValueError) as exc:
            logger.warning("Could not remove image %s: %s", url, exc)
    return removed
