"""
Database Schemas for the blog API

Each document model corresponds to a MongoDB collection; the collection name
is the lowercase of the class name. The remaining models shape request and
response bodies.
"""
from datetime import datetime
from typing import List, Literal, Optional

from bson import ObjectId
from pydantic import BaseModel, ConfigDict, EmailStr, Field

Role = Literal["reader", "admin"]
Status = Literal["draft", "pending", "published", "rejected"]
Category = Literal[
    "Technology", "Travel", "Food", "Lifestyle", "Health",
    "Business", "Education", "Entertainment", "Sports", "Other",
]

ROLES = ("reader", "admin")
STATUSES = ("draft", "pending", "published", "rejected")
CATEGORIES = (
    "Technology", "Travel", "Food", "Lifestyle", "Health",
    "Business", "Education", "Entertainment", "Sports", "Other",
)


# -----------------
# Collections
# -----------------
class Account(BaseModel):
    """
    Accounts collection schema
    Collection name: "account"
    """
    name: str = Field(..., min_length=1, max_length=100)
    email: EmailStr
    password_hash: str = Field(..., description="Hashed password (bcrypt)")
    role: Role = Field("reader")


class Post(BaseModel):
    """
    Blog posts
    Collection name: "post"
    """
    model_config = ConfigDict(arbitrary_types_allowed=True)

    title: str = Field(..., min_length=1)
    subtitle: str = Field("", max_length=250)
    content: str = Field(..., min_length=1)
    category: Category
    image_url: str
    image_id: str
    author: ObjectId = Field(..., description="Owning account _id")
    status: Status = Field("pending")
    views: int = 0


# -----------------
# Requests
# -----------------
class RegisterRequest(BaseModel):
    name: str = Field(..., min_length=1, max_length=100)
    email: EmailStr
    password: str = Field(..., min_length=6)


class LoginRequest(BaseModel):
    email: EmailStr
    password: str


class StatusUpdate(BaseModel):
    status: Status


# -----------------
# Responses
# -----------------
class UserPublic(BaseModel):
    id: str
    name: str
    email: EmailStr
    role: Role


class AuthorRef(BaseModel):
    id: str
    name: Optional[str] = None


class PostPublic(BaseModel):
    id: str
    title: str
    subtitle: str = ""
    content: str
    category: str
    image_url: str
    author: AuthorRef
    status: Status
    views: int = 0
    created_at: datetime
    updated_at: datetime


class TrendingPost(PostPublic):
    views_per_day: float


class Pagination(BaseModel):
    current: int
    pages: int
    limit: int
    total: int


class PostPage(BaseModel):
    blogs: List[PostPublic]
    pagination: Pagination
