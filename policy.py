"""
Authorization decisions.

Every operation asks ``authorize`` before touching data. Rules depend on the
action, the acting account's role, and whether it owns the post.
"""
from typing import Any, Dict, Optional

from errors import AuthorizationError

CREATE_POST = "create_post"
LIST_OWN_POSTS = "list_own_posts"
UPDATE_POST = "update_post"
DELETE_POST = "delete_post"
LIST_BY_STATUS = "list_by_status"
CHANGE_STATUS = "change_status"
VIEW_STATS = "view_stats"
VIEW_ACCOUNT_ROLE = "view_account_role"

# Actions any authenticated account may take.
_ANY_ACCOUNT = {CREATE_POST, LIST_OWN_POSTS, VIEW_ACCOUNT_ROLE}
# Actions allowed to the owner of the post, or to an admin.
_OWNER_OR_ADMIN = {UPDATE_POST, DELETE_POST}
_ADMIN_ONLY = {LIST_BY_STATUS, CHANGE_STATUS, VIEW_STATS}

_DENIED_MESSAGES = {
    UPDATE_POST: "Not authorized to edit this post",
    DELETE_POST: "Not authorized to delete this post",
}


def is_admin(account: Optional[Dict[str, Any]]) -> bool:
    return bool(account) and account.get("role") == "admin"


def is_owner(account: Optional[Dict[str, Any]], post: Dict[str, Any]) -> bool:
    return bool(account) and post.get("author") == account.get("_id")


def is_allowed(account: Dict[str, Any], action: str, post: Optional[Dict[str, Any]] = None) -> bool:
    if action in _ANY_ACCOUNT:
        return True
    if action in _ADMIN_ONLY:
        return is_admin(account)
    if action in _OWNER_OR_ADMIN:
        if post is None:
            raise ValueError(f"{action} needs the target post")
        return is_admin(account) or is_owner(account, post)
    raise ValueError(f"Unknown action: {action}")


def authorize(account: Dict[str, Any], action: str, post: Optional[Dict[str, Any]] = None) -> None:
    """Raise AuthorizationError unless ``account`` may perform ``action``."""
    if not is_allowed(account, action, post):
        raise AuthorizationError(_DENIED_MESSAGES.get(action, "Admin access required"))


def can_view(account: Optional[Dict[str, Any]], post: Dict[str, Any]) -> bool:
    """Published posts are public; others only to their owner and admins."""
    return post.get("status") == "published" or is_owner(account, post) or is_admin(account)


def visible_filter(account: Optional[Dict[str, Any]]) -> Dict[str, Any]:
    """``can_view`` as a query fragment, for writes that must not reveal hidden posts."""
    if is_admin(account):
        return {}
    if account:
        return {"$or": [{"status": "published"}, {"author": account.get("_id")}]}
    return {"status": "published"}
