"""
Read-side queries over posts.

Listings are newest first, with ``_id`` as the tie-break so repeated calls on
unchanged data return the same order. Public listings only ever contain
published posts, and single-post reads hide posts the caller may not see
behind the same not-found error as a missing post.
"""
import logging
import math
import re
from typing import Any, Dict, List, Optional

from pymongo import ReturnDocument
from pymongo.database import Database

import policy
import settings
from database import as_utc, get_documents, parse_object_id, utcnow
from errors import NotFoundError, ValidationError
from schemas import ROLES, STATUSES, AuthorRef, PostPage, PostPublic, Pagination, TrendingPost

logger = logging.getLogger(__name__)

NEWEST_FIRST = [("created_at", -1), ("_id", -1)]
PUBLISHED = {"status": "published"}


def _author_names(db: Database, posts: List[Dict[str, Any]]) -> Dict[Any, str]:
    author_ids = list({p.get("author") for p in posts if p.get("author") is not None})
    if not author_ids:
        return {}
    accounts = db["account"].find({"_id": {"$in": author_ids}}, {"name": 1})
    return {a["_id"]: a.get("name") for a in accounts}


def to_public_post(doc: Dict[str, Any], author_name: Optional[str] = None) -> PostPublic:
    return PostPublic(
        id=str(doc["_id"]),
        title=doc.get("title"),
        subtitle=doc.get("subtitle") or "",
        content=doc.get("content"),
        category=doc.get("category"),
        image_url=doc.get("image_url"),
        author=AuthorRef(id=str(doc.get("author")), name=author_name),
        status=doc.get("status", "pending"),
        views=doc.get("views", 0),
        created_at=as_utc(doc.get("created_at")),
        updated_at=as_utc(doc.get("updated_at") or doc.get("created_at")),
    )


def with_authors(db: Database, posts: List[Dict[str, Any]]) -> List[PostPublic]:
    names = _author_names(db, posts)
    return [to_public_post(p, names.get(p.get("author"))) for p in posts]


def _bounded(limit: Optional[int], default: int) -> int:
    if limit is None:
        return default
    if limit < 1:
        raise ValidationError("limit must be at least 1")
    return min(limit, settings.MAX_PAGE_SIZE)


# -----------------
# Listings
# -----------------
def list_published(db: Database, limit: Optional[int] = None) -> List[PostPublic]:
    posts = get_documents(db, "post", PUBLISHED, sort=NEWEST_FIRST,
                          limit=_bounded(limit, settings.PUBLISHED_LIST_LIMIT))
    return with_authors(db, posts)


def list_by_owner(db: Database, account: Dict[str, Any]) -> List[PostPublic]:
    policy.authorize(account, policy.LIST_OWN_POSTS)
    posts = get_documents(db, "post", {"author": account["_id"]}, sort=NEWEST_FIRST)
    return [to_public_post(p, account.get("name")) for p in posts]


def list_pending(db: Database, account: Dict[str, Any]) -> List[PostPublic]:
    policy.authorize(account, policy.LIST_BY_STATUS)
    posts = get_documents(db, "post", {"status": "pending"}, sort=NEWEST_FIRST)
    return with_authors(db, posts)


def list_for_admin(
    db: Database,
    account: Dict[str, Any],
    status: Optional[str] = None,
    page: int = 1,
    limit: int = settings.DEFAULT_PAGE_SIZE,
) -> PostPage:
    """One page of posts, optionally filtered by status ("all" means no filter)."""
    policy.authorize(account, policy.LIST_BY_STATUS)
    if page < 1:
        raise ValidationError("page must be at least 1")
    if limit < 1 or limit > settings.MAX_PAGE_SIZE:
        raise ValidationError(f"limit must be between 1 and {settings.MAX_PAGE_SIZE}")

    query = {}
    if status and status != "all":
        if status not in STATUSES:
            raise ValidationError(f"Invalid status: {status}")
        query["status"] = status

    posts = get_documents(db, "post", query, sort=NEWEST_FIRST, skip=(page - 1) * limit, limit=limit)
    total = db["post"].count_documents(query)
    return PostPage(
        blogs=with_authors(db, posts),
        pagination=Pagination(current=page, pages=math.ceil(total / limit), limit=limit, total=total),
    )


# -----------------
# Single post
# -----------------
def get_visible_post(db: Database, post_id: Any, account: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
    """Fetch a post the caller may see; anything else is reported as missing."""
    post = db["post"].find_one({"_id": parse_object_id(post_id, "Blog")})
    if not post or not policy.can_view(account, post):
        raise NotFoundError("Blog not found")
    return post


def fetch_post(db: Database, post_id: Any, account: Optional[Dict[str, Any]] = None) -> PostPublic:
    post = get_visible_post(db, post_id, account)
    return with_authors(db, [post])[0]


def export_text(db: Database, post_id: Any, account: Optional[Dict[str, Any]] = None) -> Dict[str, str]:
    """Plain-text rendition of a post, with a filename derived from its title."""
    post = fetch_post(db, post_id, account)
    filename = (re.sub(r"[^A-Za-z0-9.-]+", "_", post.title).strip("_") or "blog") + ".txt"
    body = (
        f"Title: {post.title}\n\n"
        f"Subtitle: {post.subtitle}\n\n"
        f"Content:\n{post.content}\n\n"
        f"Category: {post.category}\n\n"
        f"Author: {post.author.name or 'Unknown'}"
    )
    return {"filename": filename, "content": body}


# -----------------
# Views and ranking
# -----------------
def record_view(db: Database, post_id: Any, account: Optional[Dict[str, Any]] = None) -> int:
    """Count one page view and return the new total.

    Posts the caller may not see are reported as missing and left untouched.
    """
    post = db["post"].find_one_and_update(
        {"_id": parse_object_id(post_id, "Blog"), **policy.visible_filter(account)},
        {"$inc": {"views": 1}},
        projection={"views": True},
        return_document=ReturnDocument.AFTER,
    )
    if not post:
        raise NotFoundError("Blog not found")
    return post["views"]


def view_count(db: Database, post_id: Any, account: Optional[Dict[str, Any]] = None) -> int:
    return get_visible_post(db, post_id, account).get("views", 0)


def views_per_day(doc: Dict[str, Any], now=None) -> float:
    """Average daily views since creation; posts younger than a day count as one day old."""
    now = now or utcnow()
    created = as_utc(doc.get("created_at")) or now
    age_days = max((now - created).total_seconds() / 86400.0, 1.0)
    return round(doc.get("views", 0) / age_days, 2)


def trending(db: Database, limit: Optional[int] = None) -> List[TrendingPost]:
    posts = get_documents(db, "post", PUBLISHED, sort=[("views", -1), ("created_at", -1), ("_id", -1)],
                          limit=_bounded(limit, settings.TRENDING_DEFAULT_LIMIT))
    now = utcnow()
    return [
        TrendingPost(**public.model_dump(), views_per_day=views_per_day(doc, now))
        for doc, public in zip(posts, with_authors(db, posts))
    ]


def popular(db: Database, limit: Optional[int] = None) -> List[PostPublic]:
    posts = get_documents(db, "post", PUBLISHED, sort=[("views", -1), ("_id", -1)],
                          limit=_bounded(limit, settings.POPULAR_DEFAULT_LIMIT))
    return with_authors(db, posts)


# -----------------
# Statistics
# -----------------
def stats(db: Database, account: Dict[str, Any]) -> Dict[str, Any]:
    policy.authorize(account, policy.VIEW_STATS)
    posts_by_status = {s: db["post"].count_documents({"status": s}) for s in STATUSES}
    accounts_by_role = {r: db["account"].count_documents({"role": r}) for r in ROLES}
    views = list(db["post"].aggregate([{"$group": {"_id": None, "total": {"$sum": "$views"}}}]))
    return {
        "posts": {"total": sum(posts_by_status.values()), **posts_by_status},
        "accounts": {"total": sum(accounts_by_role.values()), **accounts_by_role},
        "views": views[0]["total"] if views else 0,
    }
