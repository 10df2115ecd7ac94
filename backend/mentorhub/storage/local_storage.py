import uuid
from pathlib import Path
from typing import Optional
from mentorhub.core.config import settings


class LocalStorage:
    """Per-user resume files on local disk (under /tmp in function hosting)"""

    def __init__(self, upload_dir: Optional[str] = None):
        self.upload_dir = Path(upload_dir or settings.upload_dir())

    def save_file(self, user_id: int, original_filename: str, content: bytes) -> tuple[str, str]:
        """Save uploaded bytes and return (file_path, filename)"""
        # Generate unique filename, keep the extension for downloads
        file_ext = Path(original_filename).suffix.lower()
        unique_filename = f"resume-{user_id}-{uuid.uuid4().hex}{file_ext}"
        user_dir = self.upload_dir / str(user_id)
        user_dir.mkdir(parents=True, exist_ok=True)

        file_path = user_dir / unique_filename
        with open(file_path, "wb") as f:
            f.write(content)

        return str(file_path), unique_filename

    def file_exists(self, path: Optional[str]) -> bool:
        return bool(path) and Path(path).exists()


storage = LocalStorage()
