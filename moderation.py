"""
Post lifecycle: creation, status moderation, edits and deletion.

New posts start ``published`` when an admin writes them and ``pending``
otherwise. Only admins change status afterwards, and any status may move to
any other. Stored images follow their post: replacing an image stores the new
one before releasing the old, and deleting a post releases its image on a
best-effort basis.
"""
import logging
from typing import Any, Dict, Optional

import pydantic
from pymongo import ReturnDocument
from pymongo.database import Database

import policy
import settings
from database import create_document, parse_object_id, utcnow
from errors import NotFoundError, ValidationError
from images import ImageStore, validate_image
from schemas import CATEGORIES, STATUSES, Post

logger = logging.getLogger(__name__)


def _clean_fields(
    title: Optional[str] = None,
    subtitle: Optional[str] = None,
    content: Optional[str] = None,
    category: Optional[str] = None,
) -> Dict[str, Any]:
    """Validate the text fields that were supplied; absent ones are skipped."""
    fields = {}
    if title is not None:
        title = title.strip()
        if not title:
            raise ValidationError("Title is required")
        fields["title"] = title
    if subtitle is not None:
        subtitle = subtitle.strip()
        if len(subtitle) > settings.SUBTITLE_MAX_LENGTH:
            raise ValidationError(f"Subtitle must be at most {settings.SUBTITLE_MAX_LENGTH} characters")
        fields["subtitle"] = subtitle
    if content is not None:
        if not content.strip():
            raise ValidationError("Content is required")
        fields["content"] = content
    if category is not None:
        if category not in CATEGORIES:
            raise ValidationError(f"Invalid category: {category}")
        fields["category"] = category
    return fields


def release_image_quietly(images: ImageStore, image_id: Optional[str]) -> bool:
    """Release a stored image, logging instead of raising on failure."""
    if not image_id:
        return False
    try:
        images.release(image_id)
        return True
    except Exception as e:
        logger.warning(f"Failed to release image {image_id}: {e}")
        return False


def get_post(db: Database, post_id: Any) -> Dict[str, Any]:
    post = db["post"].find_one({"_id": parse_object_id(post_id, "Blog")})
    if not post:
        raise NotFoundError("Blog not found")
    return post


def create_post(
    db: Database,
    images: ImageStore,
    account: Dict[str, Any],
    title: Optional[str],
    content: Optional[str],
    category: Optional[str],
    image_data: Optional[bytes],
    image_type: Optional[str],
    subtitle: Optional[str] = "",
) -> Dict[str, Any]:
    policy.authorize(account, policy.CREATE_POST)

    if title is None:
        raise ValidationError("Title is required")
    if content is None:
        raise ValidationError("Content is required")
    if category is None:
        raise ValidationError("Category is required")
    fields = _clean_fields(title=title, subtitle=subtitle or "", content=content, category=category)
    validate_image(image_data, image_type)

    image_url, image_id = images.store(image_data, image_type)
    status = "published" if policy.is_admin(account) else "pending"
    try:
        post = Post(
            image_url=image_url,
            image_id=image_id,
            author=account["_id"],
            status=status,
            **fields,
        )
    except pydantic.ValidationError as e:
        release_image_quietly(images, image_id)
        raise ValidationError(str(e))

    try:
        doc = create_document(db, "post", post.model_dump())
    except Exception:
        release_image_quietly(images, image_id)
        raise

    logger.info(f"Created post {doc['_id']} by {account['_id']} with status {status}")
    return doc


def change_status(db: Database, account: Dict[str, Any], post_id: Any, status: str) -> Dict[str, Any]:
    """Admins may move a post between any two statuses."""
    policy.authorize(account, policy.CHANGE_STATUS)
    if status not in STATUSES:
        raise ValidationError(f"Invalid status: {status}")

    oid = parse_object_id(post_id, "Blog")
    previous = db["post"].find_one_and_update(
        {"_id": oid},
        {"$set": {"status": status, "updated_at": utcnow()}},
        return_document=ReturnDocument.BEFORE,
    )
    if not previous:
        raise NotFoundError("Blog not found")

    logger.info(f"Post {oid} status {previous.get('status')} -> {status} by admin {account['_id']}")
    return get_post(db, oid)


def update_post(
    db: Database,
    images: ImageStore,
    account: Dict[str, Any],
    post_id: Any,
    title: Optional[str] = None,
    subtitle: Optional[str] = None,
    content: Optional[str] = None,
    category: Optional[str] = None,
    image_data: Optional[bytes] = None,
    image_type: Optional[str] = None,
) -> Dict[str, Any]:
    """Replace the supplied fields of a post owned by ``account`` (or any post, for admins)."""
    post = get_post(db, post_id)
    policy.authorize(account, policy.UPDATE_POST, post)

    patch = _clean_fields(title=title, subtitle=subtitle, content=content, category=category)

    old_image_id = None
    if image_data is not None:
        validate_image(image_data, image_type)
        image_url, image_id = images.store(image_data, image_type)
        patch["image_url"] = image_url
        patch["image_id"] = image_id
        old_image_id = post.get("image_id")

    patch["updated_at"] = utcnow()
    updated = db["post"].find_one_and_update(
        {"_id": post["_id"]},
        {"$set": patch},
        return_document=ReturnDocument.AFTER,
    )
    if not updated:
        # Deleted while we were storing the new image.
        release_image_quietly(images, patch.get("image_id"))
        raise NotFoundError("Blog not found")

    if old_image_id:
        release_image_quietly(images, old_image_id)

    logger.info(f"Updated post {post['_id']} ({', '.join(sorted(patch))})")
    return updated


def delete_post(db: Database, images: ImageStore, account: Dict[str, Any], post_id: Any) -> None:
    post = get_post(db, post_id)
    policy.authorize(account, policy.DELETE_POST, post)

    release_image_quietly(images, post.get("image_id"))
    db["post"].delete_one({"_id": post["_id"]})
    logger.info(f"Deleted post {post['_id']} by {account['_id']}")
