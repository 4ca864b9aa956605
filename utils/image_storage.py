import logging
import re
import uuid
from pathlib import Path

logger = logging.getLogger(__name__)


# Directory structure:
# <OUTPUT_DIR>/
# └── uploads/
#     └── <handle>        (handle = <32 hex chars>.<ext>)

_EXTENSIONS = {
    "image/jpeg": ".jpg",
    "image/png": ".png",
    "image/webp": ".webp",
}

_HANDLE_PATTERN = re.compile(r"^[0-9a-f]{32}\.(jpg|png|webp|bin)$")

UPLOADS_URL_PREFIX = "/uploads"


class ImageStorage:
    """Local storage for uploaded images, addressed by opaque handles."""

    def __init__(self, base_dir: str):
        self.base_dir = Path(base_dir)
        self.uploads_dir = self.base_dir / "uploads"

    def get_uploads_dir(self) -> Path:
        """Returns the uploads directory, creates if needed."""
        self.uploads_dir.mkdir(parents=True, exist_ok=True)
        return self.uploads_dir

    @staticmethod
    def is_valid_handle(handle: str) -> bool:
        return bool(handle) and bool(_HANDLE_PATTERN.match(handle))

    def _path_for(self, handle: str) -> Path:
        if not self.is_valid_handle(handle):
            raise KeyError(f"Invalid storage handle: {handle!r}")
        return self.uploads_dir / handle

    def save(self, data: bytes, mime_type: str | None = None) -> str:
        """Stores the bytes and returns the new handle."""
        extension = _EXTENSIONS.get(mime_type or "", ".bin")
        handle = f"{uuid.uuid4().hex}{extension}"
        (self.get_uploads_dir() / handle).write_bytes(data)
        logger.debug(f"Stored upload {handle} ({len(data)} bytes)")
        return handle

    def get(self, handle: str) -> bytes:
        """
        Returns the stored bytes.

        Raises:
            KeyError: if the handle is malformed or unknown.
        """
        path = self._path_for(handle)
        if not path.exists():
            raise KeyError(f"Unknown storage handle: {handle!r}")
        return path.read_bytes()

    def get_url(self, handle: str) -> str:
        """Returns the URL the web layer serves the image under."""
        return f"{UPLOADS_URL_PREFIX}/{handle}"

    def mime_type_for(self, handle: str) -> str:
        for mime_type, extension in _EXTENSIONS.items():
            if handle.endswith(extension):
                return mime_type
        return "application/octet-stream"
