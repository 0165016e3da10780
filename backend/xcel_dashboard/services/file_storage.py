"""Local file storage for uploads and combined workbooks"""
import logging
import os
import time
import uuid
from pathlib import Path
from typing import Optional

from xcel_dashboard.config import settings

logger = logging.getLogger(__name__)


class FileStorage:
    """Writes files under the configured upload directory"""

    def __init__(self, root: Optional[Path] = None):
        self.root = Path(root) if root else settings.upload_path
        self.root.mkdir(parents=True, exist_ok=True)

    def stored_name(self, original_filename: str) -> str:
        """Timestamped, collision-free name for a file on disk"""
        safe = Path(original_filename).name.replace(" ", "_")
        return f"{int(time.time())}_{uuid.uuid4().hex[:8]}_{safe}"

    def save(self, original_filename: str, content: bytes) -> Path:
        """Write bytes atomically (temp file + rename) and return the path"""
        path = self.root / self.stored_name(original_filename)
        tmp_path = path.with_suffix(path.suffix + ".part")
        tmp_path.write_bytes(content)
        os.replace(tmp_path, path)

        logger.info(f"Stored {original_filename} at {path} ({len(content)} bytes)")
        return path

    def delete(self, path: str) -> bool:
        """Remove a stored file. Missing files are not an error."""
        target = Path(path)
        if target.exists():
            target.unlink()
            logger.info(f"Deleted stored file {target}")
            return True
        return False
