"""
Tests for read-side queries: listings, pagination, visibility, views and ranking.
"""

import threading
from concurrent.futures import ThreadPoolExecutor
from datetime import timedelta

import pytest

import delivery
import moderation
from errors import AuthorizationError, NotFoundError, ValidationError


class AtomicPosts:
    """
    Database wrapper applying each post find_one_and_update as one step.

    mongod applies the operation atomically per document; mongomock reads and
    writes in separate steps, so calls are serialized here. Code that reads
    and then writes in separate calls still races under this wrapper.
    """

    def __init__(self, database):
        self._database = database
        self._lock = threading.Lock()

    def __getitem__(self, name):
        collection = self._database[name]
        return _LockedCollection(collection, self._lock) if name == "post" else collection


class _LockedCollection:

    def __init__(self, collection, lock):
        self._collection = collection
        self._lock = lock

    def find_one_and_update(self, *args, **kwargs):
        with self._lock:
            return self._collection.find_one_and_update(*args, **kwargs)

    def __getattr__(self, name):
        return getattr(self._collection, name)


class TestListings:

    def test_list_published_newest_first_with_author(self, mongo_db, make_post, reader):
        old = make_post(reader, age=timedelta(days=2))
        new = make_post(reader, age=timedelta(hours=1))
        make_post(reader, status="pending")
        make_post(reader, status="rejected")

        posts = delivery.list_published(mongo_db)

        assert [p.id for p in posts] == [str(new["_id"]), str(old["_id"])]
        assert posts[0].author.name == "Reader"

    def test_list_published_is_bounded(self, mongo_db, make_post, reader, monkeypatch):
        monkeypatch.setattr("settings.PUBLISHED_LIST_LIMIT", 3)
        for _ in range(5):
            make_post(reader)

        assert len(delivery.list_published(mongo_db)) == 3
        assert len(delivery.list_published(mongo_db, limit=4)) == 4

    def test_list_published_rejects_bad_limit(self, mongo_db):
        with pytest.raises(ValidationError):
            delivery.list_published(mongo_db, limit=0)

    def test_list_by_owner_includes_every_status(self, mongo_db, make_post, reader, other_reader):
        for status in ("pending", "published", "rejected"):
            make_post(reader, status=status)
        make_post(other_reader)

        posts = delivery.list_by_owner(mongo_db, reader)

        assert sorted(p.status for p in posts) == ["pending", "published", "rejected"]

    def test_list_pending_is_admin_only(self, mongo_db, make_post, reader, admin):
        pending = make_post(reader, status="pending")
        make_post(reader, status="published")

        assert [p.id for p in delivery.list_pending(mongo_db, admin)] == [str(pending["_id"])]
        with pytest.raises(AuthorizationError):
            delivery.list_pending(mongo_db, reader)


class TestAdminPagination:

    def test_second_page_of_twenty_five(self, mongo_db, make_post, reader, admin):
        for i in range(25):
            make_post(reader, age=timedelta(minutes=i))

        page = delivery.list_for_admin(mongo_db, admin, page=2, limit=10)

        assert len(page.blogs) == 10
        assert page.pagination.total == 25
        assert page.pagination.pages == 3
        assert page.pagination.current == 2

    @pytest.mark.parametrize("limit", [1, 3, 7, 25, 100])
    def test_pages_cover_count(self, mongo_db, make_post, reader, admin, limit):
        for i in range(12):
            make_post(reader, status="published" if i % 3 else "pending")

        first = delivery.list_for_admin(mongo_db, admin, status="published", page=1, limit=limit)
        seen = []
        for page in range(1, first.pagination.pages + 1):
            seen.extend(p.id for p in delivery.list_for_admin(
                mongo_db, admin, status="published", page=page, limit=limit).blogs)

        assert len(seen) == len(set(seen)) == mongo_db["post"].count_documents({"status": "published"})

    def test_equal_timestamps_have_stable_order(self, mongo_db, make_post, reader, admin):
        posts = [make_post(reader) for _ in range(6)]
        same = posts[0]["created_at"]
        mongo_db["post"].update_many({}, {"$set": {"created_at": same}})

        first = [p.id for p in delivery.list_for_admin(mongo_db, admin, limit=6).blogs]
        second = [p.id for p in delivery.list_for_admin(mongo_db, admin, limit=6).blogs]

        assert first == second == [str(p["_id"]) for p in reversed(posts)]

    def test_status_all_means_no_filter(self, mongo_db, make_post, reader, admin):
        make_post(reader, status="pending")
        make_post(reader, status="rejected")

        assert delivery.list_for_admin(mongo_db, admin, status="all").pagination.total == 2

    @pytest.mark.parametrize("kwargs", [{"page": 0}, {"limit": 0}, {"limit": 101}, {"status": "archived"}])
    def test_invalid_arguments(self, mongo_db, admin, kwargs):
        with pytest.raises(ValidationError):
            delivery.list_for_admin(mongo_db, admin, **kwargs)

    def test_reader_forbidden(self, mongo_db, reader):
        with pytest.raises(AuthorizationError):
            delivery.list_for_admin(mongo_db, reader)


class TestSinglePost:

    def test_public_fetch_of_published_post(self, mongo_db, make_post, reader):
        post = make_post(reader, status="published", title="Hello")

        fetched = delivery.fetch_post(mongo_db, str(post["_id"]))

        assert fetched.title == "Hello"
        assert fetched.author.name == "Reader"

    @pytest.mark.parametrize("status", ["draft", "pending", "rejected"])
    def test_unpublished_post_looks_missing(self, mongo_db, make_post, reader, other_reader, admin, status):
        post = make_post(reader, status=status)

        for caller in (None, other_reader):
            with pytest.raises(NotFoundError) as hidden:
                delivery.fetch_post(mongo_db, post["_id"], caller)
            with pytest.raises(NotFoundError) as missing:
                delivery.fetch_post(mongo_db, "0123456789abcdef01234567", caller)
            assert hidden.value.message == missing.value.message

        assert delivery.fetch_post(mongo_db, post["_id"], reader).status == status
        assert delivery.fetch_post(mongo_db, post["_id"], admin).status == status

    def test_malformed_id(self, mongo_db):
        with pytest.raises(NotFoundError):
            delivery.fetch_post(mongo_db, "zzz")

    def test_export_text(self, mongo_db, make_post, reader):
        post = make_post(reader, title="My First Post")

        export = delivery.export_text(mongo_db, post["_id"])

        assert export["filename"] == "My_First_Post.txt"
        assert export["content"].startswith("Title: My First Post")
        assert "Author: Reader" in export["content"]

    def test_export_hides_pending(self, mongo_db, make_post, reader):
        post = make_post(reader, status="pending")

        with pytest.raises(NotFoundError):
            delivery.export_text(mongo_db, post["_id"])


class TestViews:

    def test_increment_sequence(self, mongo_db, make_post, reader):
        post = make_post(reader)

        assert [delivery.record_view(mongo_db, post["_id"]) for _ in range(5)] == [1, 2, 3, 4, 5]
        assert delivery.view_count(mongo_db, post["_id"]) == 5

    def test_increment_missing_post(self, mongo_db):
        with pytest.raises(NotFoundError):
            delivery.record_view(mongo_db, "0123456789abcdef01234567")

    @pytest.mark.parametrize("status", ["pending", "rejected", "draft"])
    def test_increment_on_hidden_post_looks_missing(self, mongo_db, make_post, reader, other_reader, status):
        post = make_post(reader, status=status)

        for account in (None, other_reader):
            with pytest.raises(NotFoundError, match="Blog not found"):
                delivery.record_view(mongo_db, post["_id"], account)

        assert mongo_db["post"].find_one({"_id": post["_id"]})["views"] == 0

    def test_owner_and_admin_may_count_hidden_post(self, mongo_db, make_post, reader, admin):
        post = make_post(reader, status="pending")

        assert delivery.record_view(mongo_db, post["_id"], reader) == 1
        assert delivery.record_view(mongo_db, post["_id"], admin) == 2

    def test_concurrent_increments_are_not_lost(self, mongo_db, make_post, reader):
        post = make_post(reader, views=10)
        views = 40
        db = AtomicPosts(mongo_db)

        with ThreadPoolExecutor(max_workers=8) as pool:
            totals = list(pool.map(lambda _: delivery.record_view(db, post["_id"]), range(views)))

        assert sorted(totals) == list(range(11, 11 + views))
        assert mongo_db["post"].find_one({"_id": post["_id"]})["views"] == 10 + views

    def test_views_per_day(self):
        from database import utcnow

        now = utcnow()
        assert delivery.views_per_day({"views": 30, "created_at": now - timedelta(days=10)}, now) == 3.0
        # Younger than a day counts as a full day.
        assert delivery.views_per_day({"views": 7, "created_at": now - timedelta(hours=2)}, now) == 7.0


class TestRanking:

    def test_trending_orders_by_views_then_recency(self, mongo_db, make_post, reader):
        a = make_post(reader, views=5, age=timedelta(days=3))
        b = make_post(reader, views=5, age=timedelta(days=1))
        c = make_post(reader, views=9, age=timedelta(days=2))
        make_post(reader, status="pending", views=100)
        make_post(reader, status="rejected", views=100)

        posts = delivery.trending(mongo_db)

        assert [p.id for p in posts] == [str(c["_id"]), str(b["_id"]), str(a["_id"])]
        assert all(p.status == "published" for p in posts)
        assert posts[0].views_per_day == pytest.approx(4.5, rel=0.01)

    def test_trending_limit(self, mongo_db, make_post, reader):
        for i in range(4):
            make_post(reader, views=i)

        assert len(delivery.trending(mongo_db, limit=2)) == 2

    def test_popular_only_published(self, mongo_db, make_post, reader):
        make_post(reader, status="pending", views=50)
        top = make_post(reader, views=10)
        make_post(reader, views=1)

        posts = delivery.popular(mongo_db, limit=5)

        assert posts[0].id == str(top["_id"])
        assert len(posts) == 2


class TestStats:

    def test_counts(self, mongo_db, make_post, reader, admin):
        make_post(reader, status="pending", views=2)
        make_post(reader, status="published", views=3)
        make_post(admin, status="published")

        stats = delivery.stats(mongo_db, admin)

        assert stats["posts"] == {"total": 3, "draft": 0, "pending": 1, "published": 2, "rejected": 0}
        assert stats["accounts"] == {"total": 2, "reader": 1, "admin": 1}
        assert stats["views"] == 5

    def test_reader_forbidden(self, mongo_db, reader):
        with pytest.raises(AuthorizationError):
            delivery.stats(mongo_db, reader)


class TestDeletionRemovesFromListings:

    def test_deleted_post_gone_everywhere(self, mongo_db, image_store, make_post, reader, admin):
        post = make_post(reader, views=3)

        moderation.delete_post(mongo_db, image_store, reader, post["_id"])

        with pytest.raises(NotFoundError):
            delivery.fetch_post(mongo_db, post["_id"], admin)
        assert delivery.list_published(mongo_db) == []
        assert delivery.trending(mongo_db) == []
        assert delivery.list_for_admin(mongo_db, admin).pagination.total == 0
        assert mongo_db["post"].count_documents({"image_id": post["image_id"]}) == 0
