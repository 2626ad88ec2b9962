import logging
import os
from pathlib import Path

from ats.utils.filesystem import ensure_bucket_dir, sanitize_filename
from ats.utils.hashing import sha256_bytes

logger = logging.getLogger("ats.blobs")


class BlobStore:
    """Write-once local storage for uploaded attachments.

    Files are named by a content-hash prefix plus the sanitized original name
    and made read-only once written. ``store`` returns a ``file://`` URL.
    """

    def __init__(self, blob_dir: Path, bucket: str = "attachments"):
        self.blob_dir = blob_dir
        self.bucket = bucket

    def store(self, data: bytes, content_type: str, filename: str) -> str:
        target = self._path_for(data, filename)
        if not target.exists():
            target.write_bytes(data)
            os.chmod(target, 0o444)
        logger.info("Stored %s (%s, %d bytes) as %s", filename, content_type, len(data), target.name)
        return target.resolve().as_uri()

    def contains(self, data: bytes, filename: str) -> bool:
        return self._path_for(data, filename).exists()

    def remove(self, data: bytes, filename: str):
        """Delete a stored blob. Only for blobs nothing references yet."""
        target = self._path_for(data, filename)
        target.unlink(missing_ok=True)
        logger.info("Removed unreferenced blob %s", target.name)

    def _path_for(self, data: bytes, filename: str) -> Path:
        stored_name = f"{sha256_bytes(data)[:16]}_{sanitize_filename(filename)}"
        return ensure_bucket_dir(self.bucket, self.blob_dir) / stored_name
