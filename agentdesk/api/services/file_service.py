"""Attachment and generated-image storage service."""

import base64
import binascii
import logging
import shutil
import uuid
from datetime import datetime
from pathlib import Path
from typing import Optional

import aiofiles

logger = logging.getLogger(__name__)

_IMAGE_SIGNATURES = (
    (b"\x89PNG\r\n\x1a\n", ".png"),
    (b"\xff\xd8\xff", ".jpg"),
    (b"GIF87a", ".gif"),
    (b"GIF89a", ".gif"),
)


class FileService:
    """Service for reading knowledge files and storing generated images."""

    def __init__(self, images_dir: Path, files_dir: Path):
        """Initialize file service.

        Args:
            images_dir: Directory where generated images are written
            files_dir: Directory holding knowledge files copied into user data
        """
        self.images_dir = Path(images_dir)
        self.files_dir = Path(files_dir)

    async def read_base64(self, path: str) -> Optional[str]:
        """Read a file and return its Base64 encoded content.

        Args:
            path: File path

        Returns:
            Base64 string, or None when the file cannot be read
        """
        try:
            async with aiofiles.open(path, 'rb') as f:
                content = await f.read()
        except OSError as e:
            logger.error(f"Failed to read file {path}: {e}")
            return None
        return base64.b64encode(content).decode('utf-8')

    async def save_image(self, base64_data: str) -> str:
        """Decode a Base64 image and write it under ``images_dir``.

        Args:
            base64_data: Raw Base64 or a ``data:`` URI

        Returns:
            Path of the written file

        Raises:
            ValueError: If the payload is not valid Base64
        """
        if base64_data.startswith("data:") and "," in base64_data:
            base64_data = base64_data.split(",", 1)[1]
        try:
            content = base64.b64decode(base64_data, validate=False)
        except (binascii.Error, ValueError) as e:
            raise ValueError(f"Invalid image payload: {e}") from e

        extension = ".png"
        for signature, suffix in _IMAGE_SIGNATURES:
            if content.startswith(signature):
                extension = suffix
                break

        self.images_dir.mkdir(parents=True, exist_ok=True)
        filename = f"image_{datetime.now().strftime('%Y%m%d_%H%M%S')}_{uuid.uuid4().hex[:8]}{extension}"
        image_path = self.images_dir / filename
        async with aiofiles.open(image_path, 'wb') as f:
            await f.write(content)

        logger.info(f"Saved generated image: {image_path}")
        return str(image_path)

    async def delete(self, path: str) -> bool:
        """Delete a file if it exists.

        Returns:
            True if a file was removed, False otherwise
        """
        if not path:
            return False
        target = Path(path)
        try:
            if target.exists():
                target.unlink()
                return True
        except OSError as e:
            logger.error(f"Failed to delete file {path}: {e}")
        return False

    def copy_to_user_data(self, source_path: Path) -> str:
        """Copy a knowledge file into ``files_dir``.

        Args:
            source_path: File chosen by the user

        Returns:
            Path of the copy
        """
        source = Path(source_path)
        self.files_dir.mkdir(parents=True, exist_ok=True)
        destination = self.files_dir / source.name
        shutil.copyfile(source, destination)
        logger.info(f"Copied knowledge file to {destination}")
        return str(destination)
