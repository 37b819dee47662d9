import logging
import secrets
from typing import Optional

from fastapi import Depends, FastAPI, File, Form, Header, Request, UploadFile
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, PlainTextResponse, Response
from pymongo.database import Database
from pymongo.errors import PyMongoError

import database
import delivery
import moderation
import policy
import security
import settings
from database import get_db
from errors import AuthenticationError, AuthorizationError, BlogError
from images import ImageStore
from logger import setup_logging
from schemas import LoginRequest, RegisterRequest, StatusUpdate

setup_logging(settings.LOG_LEVEL)
logger = logging.getLogger(__name__)

app = FastAPI(title="Blog Publishing API")

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# -----------------
# Error mapping
# -----------------
@app.exception_handler(BlogError)
def handle_blog_error(request: Request, exc: BlogError):
    if exc.status_code >= 500:
        logger.error(f"{request.method} {request.url.path} failed: {exc.message}")
    return JSONResponse(status_code=exc.status_code, content={"detail": exc.message})


@app.exception_handler(RequestValidationError)
def handle_request_validation(request: Request, exc: RequestValidationError):
    return JSONResponse(status_code=400, content={"detail": jsonable_encoder(exc.errors())})


@app.exception_handler(PyMongoError)
def handle_database_error(request: Request, exc: PyMongoError):
    logger.error(f"{request.method} {request.url.path} database error: {exc}")
    return JSONResponse(status_code=500, content={"detail": "Database error"})


# -----------------
# Dependencies
# -----------------
def get_image_store(db: Database = Depends(get_db)) -> ImageStore:
    return ImageStore(db)


def get_current_account(authorization: Optional[str] = Header(None), db: Database = Depends(get_db)) -> dict:
    return security.resolve_account(db, authorization)


def get_optional_account(authorization: Optional[str] = Header(None), db: Database = Depends(get_db)) -> Optional[dict]:
    """Public reads: a missing or stale token just means an anonymous caller."""
    if not authorization:
        return None
    try:
        return security.resolve_account(db, authorization)
    except AuthenticationError as e:
        logger.debug(f"Ignoring credential on public read: {e.message}")
        return None


def _read_upload(image: Optional[UploadFile]):
    if image is None:
        return None, None
    return image.file.read(), image.content_type


def _auth_response(db: Database, account: dict) -> dict:
    token = security.issue_token(db, account["_id"])
    return {"token": token, "user": security.to_public_user(account).model_dump()}


# -----------------
# Basic routes
# -----------------
@app.get("/")
def read_root():
    return {"message": "Blog API Running"}


@app.get("/test")
def test_database():
    response = {
        "backend": "✅ Running",
        "database": "❌ Not Available",
        "database_url": "✅ Set" if settings.DATABASE_URL else "❌ Not Set",
        "database_name": settings.DATABASE_NAME or "❌ Not Set",
        "collections": []
    }
    try:
        if database.db is not None:
            response["database"] = "✅ Connected"
            response["collections"] = database.db.list_collection_names()
    except PyMongoError as e:
        response["database"] = f"⚠️ Error: {str(e)[:80]}"
    return response


# -----------------
# Auth routes
# -----------------
@app.post("/api/auth/register", status_code=201)
def register(payload: RegisterRequest, db: Database = Depends(get_db)):
    account = security.create_account(db, payload.name, payload.email, payload.password, role="reader")
    return _auth_response(db, account)


@app.post("/api/auth/login")
def login(payload: LoginRequest, db: Database = Depends(get_db)):
    account = security.authenticate(db, payload.email, payload.password, role="reader")
    return _auth_response(db, account)


@app.get("/api/auth/me")
def me(account: dict = Depends(get_current_account)):
    return {"user": security.to_public_user(account).model_dump()}


@app.post("/api/auth/logout")
def logout(authorization: Optional[str] = Header(None), db: Database = Depends(get_db)):
    if authorization and authorization.lower().startswith("bearer "):
        security.revoke_token(db, authorization.split(" ", 1)[1].strip())
    return {"ok": True}


@app.get("/api/users/{user_id}/role")
def account_role(user_id: str, account: dict = Depends(get_current_account), db: Database = Depends(get_db)):
    policy.authorize(account, policy.VIEW_ACCOUNT_ROLE)
    target = security.find_account_by_id(db, user_id)
    return {"role": target.get("role", "reader")}


# -----------------
# Admin routes
# -----------------
@app.post("/api/admin/register", status_code=201)
def register_admin(payload: RegisterRequest, x_admin_key: Optional[str] = Header(None),
                   db: Database = Depends(get_db)):
    if settings.ADMIN_REGISTRATION_KEY and not secrets.compare_digest(
            x_admin_key or "", settings.ADMIN_REGISTRATION_KEY):
        raise AuthorizationError("Admin registration key required")
    account = security.create_account(db, payload.name, payload.email, payload.password, role="admin")
    return _auth_response(db, account)


@app.post("/api/admin/login")
def login_admin(payload: LoginRequest, db: Database = Depends(get_db)):
    account = security.authenticate(db, payload.email, payload.password, role="admin")
    return _auth_response(db, account)


@app.get("/api/admin/stats")
def admin_stats(account: dict = Depends(get_current_account), db: Database = Depends(get_db)):
    return delivery.stats(db, account)


# -----------------
# Blogs
# -----------------
@app.post("/api/blogs", status_code=201)
def create_blog(
    title: Optional[str] = Form(None),
    subtitle: Optional[str] = Form(""),
    content: Optional[str] = Form(None),
    category: Optional[str] = Form(None),
    image: Optional[UploadFile] = File(None),
    account: dict = Depends(get_current_account),
    db: Database = Depends(get_db),
    images: ImageStore = Depends(get_image_store),
):
    image_data, image_type = _read_upload(image)
    post = moderation.create_post(db, images, account, title=title, subtitle=subtitle, content=content,
                                  category=category, image_data=image_data, image_type=image_type)
    return delivery.to_public_post(post, account.get("name")).model_dump()


@app.get("/api/blogs")
def list_blogs(limit: Optional[int] = None, db: Database = Depends(get_db)):
    return [p.model_dump() for p in delivery.list_published(db, limit)]


@app.get("/api/blogs/user/post")
def my_blogs(account: dict = Depends(get_current_account), db: Database = Depends(get_db)):
    return [p.model_dump() for p in delivery.list_by_owner(db, account)]


@app.get("/api/blogs/pending")
def pending_blogs(account: dict = Depends(get_current_account), db: Database = Depends(get_db)):
    return [p.model_dump() for p in delivery.list_pending(db, account)]


@app.get("/api/blogs/admin/all")
def admin_blogs(status: Optional[str] = None, page: int = 1, limit: int = settings.DEFAULT_PAGE_SIZE,
                account: dict = Depends(get_current_account), db: Database = Depends(get_db)):
    return delivery.list_for_admin(db, account, status=status, page=page, limit=limit).model_dump()


@app.get("/api/blogs/trending")
def trending_blogs(limit: Optional[int] = None, db: Database = Depends(get_db)):
    return [p.model_dump() for p in delivery.trending(db, limit)]


@app.get("/api/blogs/popular")
def popular_blogs(limit: Optional[int] = None, db: Database = Depends(get_db)):
    return [p.model_dump() for p in delivery.popular(db, limit)]


@app.get("/api/blogs/{blog_id}")
def get_blog(blog_id: str, account: Optional[dict] = Depends(get_optional_account),
             db: Database = Depends(get_db)):
    return delivery.fetch_post(db, blog_id, account).model_dump()


@app.put("/api/blogs/{blog_id}")
def update_blog(
    blog_id: str,
    title: Optional[str] = Form(None),
    subtitle: Optional[str] = Form(None),
    content: Optional[str] = Form(None),
    category: Optional[str] = Form(None),
    image: Optional[UploadFile] = File(None),
    account: dict = Depends(get_current_account),
    db: Database = Depends(get_db),
    images: ImageStore = Depends(get_image_store),
):
    image_data, image_type = _read_upload(image)
    post = moderation.update_post(db, images, account, blog_id, title=title, subtitle=subtitle,
                                  content=content, category=category,
                                  image_data=image_data, image_type=image_type)
    return delivery.with_authors(db, [post])[0].model_dump()


@app.patch("/api/blogs/{blog_id}/status")
def update_blog_status(blog_id: str, payload: StatusUpdate, account: dict = Depends(get_current_account),
                       db: Database = Depends(get_db)):
    post = moderation.change_status(db, account, blog_id, payload.status)
    return delivery.with_authors(db, [post])[0].model_dump()


@app.delete("/api/blogs/{blog_id}")
def delete_blog(blog_id: str, account: dict = Depends(get_current_account), db: Database = Depends(get_db),
                images: ImageStore = Depends(get_image_store)):
    moderation.delete_post(db, images, account, blog_id)
    return {"message": "Blog deleted successfully"}


@app.post("/api/blogs/{blog_id}/view")
def track_view(blog_id: str, account: Optional[dict] = Depends(get_optional_account),
               db: Database = Depends(get_db)):
    return {"success": True, "views": delivery.record_view(db, blog_id, account)}


@app.get("/api/blogs/{blog_id}/views")
def get_view_count(blog_id: str, account: Optional[dict] = Depends(get_optional_account),
                   db: Database = Depends(get_db)):
    return {"views": delivery.view_count(db, blog_id, account)}


@app.get("/api/blogs/{blog_id}/download")
def download_blog(blog_id: str, account: Optional[dict] = Depends(get_optional_account),
                  db: Database = Depends(get_db)):
    export = delivery.export_text(db, blog_id, account)
    return PlainTextResponse(
        export["content"],
        headers={"Content-Disposition": f'attachment; filename="{export["filename"]}"'},
    )


# -----------------
# Images
# -----------------
@app.get("/api/images/{image_id}")
def get_image(image_id: str, images: ImageStore = Depends(get_image_store)):
    doc = images.get(image_id)
    return Response(content=bytes(doc["data"]), media_type=doc.get("content_type", "application/octet-stream"))


if __name__ == "__main__":
    import uvicorn
    settings.validate_settings()
    logger.info(f"Starting with config: {settings.get_config_summary()}")
    uvicorn.run(app, host="0.0.0.0", port=settings.PORT)
