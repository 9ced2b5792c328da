"""
Image upload validation for profile pictures and banners.

Images are kept as raw bytes on the user's image record; nothing is
written to disk.
"""
import io
import os

from fastapi import UploadFile
from PIL import Image, UnidentifiedImageError

from .exceptions import ValidationError

MAX_IMAGE_BYTES = int(os.getenv('MAX_IMAGE_BYTES', str(4 * 1024 * 1024)))
ALLOWED_CONTENT_TYPES = {
    'image/jpeg',
    'image/jpg',
    'image/png',
    'image/gif',
    'image/tiff',
    'image/webp',
}


class ImageUploadValidator:
    """Checks uploaded images before they are stored"""

    @staticmethod
    def check_content_type(content_type: str) -> None:
        if content_type not in ALLOWED_CONTENT_TYPES:
            raise ValidationError('Invalid file type.', context={'content_type': content_type})

    @staticmethod
    def check_size(content: bytes) -> None:
        if len(content) > MAX_IMAGE_BYTES:
            limit_mb = MAX_IMAGE_BYTES // (1024 * 1024)
            raise ValidationError(f'File size exceeds the limit of {limit_mb}MB.')

    @staticmethod
    def check_decodable(content: bytes) -> None:
        try:
            with Image.open(io.BytesIO(content)) as img:
                img.verify()
        except (UnidentifiedImageError, Image.DecompressionBombError, OSError, SyntaxError, ValueError) as e:
            raise ValidationError('Invalid image file') from e

    @classmethod
    async def read(cls, file: UploadFile) -> tuple[bytes, str]:
        """Validate an upload and return its bytes and content type"""
        if file is None or not file.filename:
            raise ValidationError('No image upload found')

        content_type = (file.content_type or '').lower()
        cls.check_content_type(content_type)

        # read one byte past the limit to detect oversize uploads
        content = await file.read(MAX_IMAGE_BYTES + 1)
        cls.check_size(content)
        if not content:
            raise ValidationError('No image upload found')
        cls.check_decodable(content)
        return content, content_type


image_validator = ImageUploadValidator()
