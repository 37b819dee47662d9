"""
Image storage backed by the ``image`` collection.

Payloads are kept as BSON binary next to their content type, so uploads are
bounded by MAX_IMAGE_BYTES, which stays below the 16 MiB document limit.
"""
import logging
from typing import Any, Dict, Optional, Tuple

from bson import Binary
from pymongo.database import Database

import settings
from database import create_document, parse_object_id
from errors import NotFoundError, ValidationError

logger = logging.getLogger(__name__)


def validate_image(data: Optional[bytes], content_type: Optional[str]) -> None:
    if not data:
        raise ValidationError("Image is required")
    if content_type not in settings.ALLOWED_IMAGE_TYPES:
        raise ValidationError(
            f"Image type not allowed. Allowed types: {', '.join(settings.ALLOWED_IMAGE_TYPES)}"
        )
    if len(data) > settings.MAX_IMAGE_BYTES:
        raise ValidationError(f"Image too large. Max size: {settings.MAX_IMAGE_BYTES} bytes")


class ImageStore:
    """Stores uploaded images and hands back a public URL plus a storage id."""

    def __init__(self, db: Database):
        self.db = db

    def url_for(self, image_id: str) -> str:
        return f"{settings.PUBLIC_BASE_URL}/api/images/{image_id}"

    def store(self, data: bytes, content_type: str) -> Tuple[str, str]:
        validate_image(data, content_type)
        doc = create_document(self.db, "image", {
            "data": Binary(data),
            "content_type": content_type,
            "size": len(data),
        })
        image_id = str(doc["_id"])
        logger.info(f"Stored image {image_id} ({len(data)} bytes)")
        return self.url_for(image_id), image_id

    def release(self, image_id: str) -> None:
        result = self.db["image"].delete_one({"_id": parse_object_id(image_id, "Image")})
        if not result.deleted_count:
            raise NotFoundError("Image not found")
        logger.info(f"Released image {image_id}")

    def get(self, image_id: str) -> Dict[str, Any]:
        doc = self.db["image"].find_one({"_id": parse_object_id(image_id, "Image")})
        if not doc:
            raise NotFoundError("Image not found")
        return doc
