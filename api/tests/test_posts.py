"""Test posts, likes, bookmarks and replies."""

import inspect
import uuid

import pytest
from sqlalchemy.orm import Session

from chirp.models import Bookmark, Comment, CommentLike, Post, PostLike
from chirp.routers import posts as posts_router
from chirp.routers import users as users_router

from conftest import auth_headers, png_bytes, png_header_only


def _create_post(client, user, content="hello", **kwargs):
    response = client.post("/api/posts", data={"content": content}, headers=auth_headers(user), **kwargs)
    assert response.status_code == 201, response.text
    return response.json()["post"]


class TestCreatePost:
    def test_create_text_post(self, client, make_user):
        alice = make_user("alice")

        post = _create_post(client, alice, "hello world")

        assert post["content"] == "hello world"
        assert post["author"]["username"] == "alice"
        assert post["likes"] == []
        assert post["comments"] == []
        assert post["edited"] is False

    def test_create_image_post(self, client, make_user, fake_cloudinary):
        alice = make_user("alice")

        post = _create_post(
            client, alice, "", files={"image": ("pic.png", png_bytes(), "image/png")}
        )

        assert post["image_url"].startswith("https://res.cloudinary.com/test/")
        options = fake_cloudinary.uploads[0]["options"]
        assert options["folder"] == "chirp/posts"
        assert options["transformation"][0] == {"width": 1200, "height": 1200, "crop": "limit"}

    def test_empty_post_rejected(self, client, make_user, db: Session):
        alice = make_user("alice")

        response = client.post("/api/posts", data={"content": "   "}, headers=auth_headers(alice))

        assert response.status_code == 400
        assert db.query(Post).count() == 0

    def test_too_long_post_rejected(self, client, make_user):
        alice = make_user("alice")

        response = client.post("/api/posts", data={"content": "x" * 1001}, headers=auth_headers(alice))

        assert response.status_code == 400

    def test_upload_failure_reports_reason(self, client, make_user, fake_cloudinary, db: Session):
        alice = make_user("alice")
        fake_cloudinary.fail_uploads = 2

        response = client.post(
            "/api/posts",
            data={"content": "pic"},
            files={"image": ("pic.png", png_bytes(), "image/png")},
            headers=auth_headers(alice),
        )

        assert response.status_code == 400
        assert "provider unavailable" in response.json()["detail"]
        assert db.query(Post).count() == 0

    def test_oversized_dimensions_rejected(self, client, make_user, fake_cloudinary, db: Session):
        alice = make_user("alice")

        response = client.post(
            "/api/posts",
            data={"content": "bomb"},
            files={"image": ("big.png", png_header_only(30000, 30000), "image/png")},
            headers=auth_headers(alice),
        )

        assert response.status_code == 400
        assert fake_cloudinary.uploads == []
        assert db.query(Post).count() == 0

    def test_requires_auth(self, client):
        assert client.post("/api/posts", data={"content": "hi"}).status_code == 401


class TestFeed:
    def test_feed_is_reverse_chronological(self, client, make_user):
        alice = make_user("alice")
        bob = make_user("bob")
        _create_post(client, alice, "one")
        _create_post(client, bob, "two")
        _create_post(client, alice, "three")

        response = client.get("/api/posts")

        assert response.status_code == 200
        data = response.json()
        assert [p["content"] for p in data["posts"]] == ["three", "two", "one"]
        assert data["total_posts"] == 3
        assert data["total_pages"] == 1
        assert data["current_page"] == 1

    def test_pagination(self, client, make_user):
        alice = make_user("alice")
        for i in range(5):
            _create_post(client, alice, f"post {i}")

        data = client.get("/api/posts", params={"page": 2, "limit": 2}).json()

        assert [p["content"] for p in data["posts"]] == ["post 2", "post 1"]
        assert data["total_pages"] == 3

    def test_viewer_flags(self, client, make_user):
        alice = make_user("alice")
        post = _create_post(client, alice)
        client.post(f"/api/posts/{post['id']}/like", headers=auth_headers(alice))
        client.post(f"/api/posts/{post['id']}/bookmark", headers=auth_headers(alice))

        mine = client.get("/api/posts", headers=auth_headers(alice)).json()["posts"][0]
        anonymous = client.get("/api/posts").json()["posts"][0]

        assert mine["is_liked"] is True
        assert mine["is_bookmarked"] is True
        assert anonymous["is_liked"] is False
        assert anonymous["is_bookmarked"] is False
        assert anonymous["likes_count"] == 1


class TestLikes:
    def test_like_twice_toggles_back(self, client, make_user, db: Session):
        alice = make_user("alice")
        post = _create_post(client, alice)

        first = client.post(f"/api/posts/{post['id']}/like", headers=auth_headers(alice))
        second = client.post(f"/api/posts/{post['id']}/like", headers=auth_headers(alice))

        assert first.json() == {"liked": True, "likes_count": 1}
        assert second.json() == {"liked": False, "likes_count": 0}
        assert db.query(PostLike).count() == 0

    def test_alice_likes_bobs_post(self, client, make_user):
        make_user("alice")
        alice_id = client.post(
            "/login", json={"email": "alice@example.com", "password": "secret123"}
        ).json()["user"]["id"]
        client.cookies.clear()

        bob = client.post(
            "/register",
            json={"username": "bob", "email": "bob@example.com", "password": "secret123"},
        ).json()
        client.cookies.clear()
        assert client.get("/api/users/bob/following").json()["users"][0]["id"] == alice_id

        bob_headers = {"Authorization": f"Bearer {bob['token']}"}
        post_id = client.post("/api/posts", data={"content": "hello"}, headers=bob_headers).json()["post"]["id"]

        alice_token = client.post(
            "/login", json={"email": "alice@example.com", "password": "secret123"}
        ).json()["token"]
        client.cookies.clear()
        alice_headers = {"Authorization": f"Bearer {alice_token}"}

        client.post(f"/api/posts/{post_id}/like", headers=alice_headers)
        assert client.get(f"/api/posts/{post_id}").json()["post"]["likes"] == [alice_id]

        client.post(f"/api/posts/{post_id}/like", headers=alice_headers)
        assert alice_id not in client.get(f"/api/posts/{post_id}").json()["post"]["likes"]

    def test_like_missing_post(self, client, make_user):
        alice = make_user("alice")
        assert client.post("/api/posts/999/like", headers=auth_headers(alice)).status_code == 404


class TestBookmarks:
    def test_bookmark_toggles(self, client, make_user, db: Session):
        alice = make_user("alice")
        post = _create_post(client, alice)

        first = client.post(f"/api/posts/{post['id']}/bookmark", headers=auth_headers(alice))
        second = client.post(f"/api/posts/{post['id']}/bookmark", headers=auth_headers(alice))

        assert first.json() == {"bookmarked": True}
        assert second.json() == {"bookmarked": False}
        assert db.query(Bookmark).count() == 0


class TestEditDeletePost:
    def test_author_can_edit(self, client, make_user):
        alice = make_user("alice")
        post = _create_post(client, alice, "draft")

        response = client.put(f"/api/posts/{post['id']}", data={"content": "final"}, headers=auth_headers(alice))

        assert response.status_code == 200
        assert response.json()["post"]["content"] == "final"
        assert response.json()["post"]["edited"] is True

    def test_other_user_cannot_edit_or_delete(self, client, make_user):
        alice = make_user("alice")
        bob = make_user("bob")
        post = _create_post(client, alice)

        assert client.put(f"/api/posts/{post['id']}", data={"content": "x"}, headers=auth_headers(bob)).status_code == 403
        assert client.delete(f"/api/posts/{post['id']}", headers=auth_headers(bob)).status_code == 403

    def test_replacing_image_deletes_previous(self, client, make_user, fake_cloudinary):
        alice = make_user("alice")
        post = _create_post(client, alice, "pic", files={"image": ("a.png", png_bytes(), "image/png")})
        old_key = fake_cloudinary.uploads[0]["public_id"]

        response = client.put(
            f"/api/posts/{post['id']}",
            files={"image": ("b.png", png_bytes(color="blue"), "image/png")},
            headers=auth_headers(alice),
        )

        assert response.status_code == 200
        assert fake_cloudinary.destroyed == [old_key]

    def test_delete_removes_replies_likes_bookmarks_and_image(
        self, client, make_user, fake_cloudinary, db: Session
    ):
        alice = make_user("alice")
        bob = make_user("bob")
        post = _create_post(client, alice, "pic", files={"image": ("a.png", png_bytes(), "image/png")})
        reply = client.post(
            f"/api/posts/{post['id']}/reply", json={"content": "nice"}, headers=auth_headers(bob)
        ).json()["comment"]
        client.post(f"/api/posts/{post['id']}/comments/{reply['id']}/like", headers=auth_headers(alice))
        client.post(f"/api/posts/{post['id']}/like", headers=auth_headers(bob))
        client.post(f"/api/posts/{post['id']}/bookmark", headers=auth_headers(bob))

        response = client.delete(f"/api/posts/{post['id']}", headers=auth_headers(alice))

        assert response.status_code == 200
        assert client.get(f"/api/posts/{post['id']}").status_code == 404
        assert db.query(Comment).count() == 0
        assert db.query(CommentLike).count() == 0
        assert db.query(PostLike).count() == 0
        assert db.query(Bookmark).count() == 0
        assert fake_cloudinary.destroyed == [fake_cloudinary.uploads[0]["public_id"]]


class TestReplies:
    @pytest.fixture
    def thread(self, client, make_user):
        alice = make_user("alice")
        bob = make_user("bob")
        post = _create_post(client, alice)
        reply = client.post(
            f"/api/posts/{post['id']}/reply", json={"content": "first!"}, headers=auth_headers(bob)
        )
        assert reply.status_code == 201
        return alice, bob, post, reply.json()["comment"]

    def test_reply_has_author_and_uuid(self, thread):
        _, bob, _, reply = thread
        assert reply["author"]["username"] == "bob"
        assert uuid.UUID(reply["id"])

    def test_comments_listed_oldest_first(self, client, thread):
        alice, _, post, _ = thread
        client.post(f"/api/posts/{post['id']}/reply", json={"content": "second"}, headers=auth_headers(alice))

        comments = client.get(f"/api/posts/{post['id']}/comments").json()["comments"]

        assert [c["content"] for c in comments] == ["first!", "second"]
        detail = client.get(f"/api/posts/{post['id']}").json()["post"]
        assert detail["comments_count"] == 2
        assert [c["author"]["username"] for c in detail["comments"]] == ["bob", "alice"]

    def test_reply_to_missing_post(self, client, make_user):
        alice = make_user("alice")
        response = client.post("/api/posts/999/reply", json={"content": "hi"}, headers=auth_headers(alice))
        assert response.status_code == 404

    def test_empty_reply_rejected(self, client, thread):
        alice, _, post, _ = thread
        response = client.post(f"/api/posts/{post['id']}/reply", json={"content": ""}, headers=auth_headers(alice))
        assert response.status_code == 400

    def test_comment_like_toggles(self, client, thread):
        alice, _, post, reply = thread
        url = f"/api/posts/{post['id']}/comments/{reply['id']}/like"

        assert client.post(url, headers=auth_headers(alice)).json() == {"liked": True, "likes_count": 1}
        assert client.post(url, headers=auth_headers(alice)).json() == {"liked": False, "likes_count": 0}

    def test_only_reply_author_can_edit(self, client, thread):
        alice, bob, post, reply = thread
        url = f"/api/posts/{post['id']}/comments/{reply['id']}"

        assert client.put(url, json={"content": "hijack"}, headers=auth_headers(alice)).status_code == 403

        response = client.put(url, json={"content": "edited"}, headers=auth_headers(bob))
        assert response.status_code == 200
        assert response.json()["comment"]["content"] == "edited"
        assert response.json()["comment"]["edited"] is True

    def test_only_reply_author_can_delete(self, client, thread, db: Session):
        alice, bob, post, reply = thread
        url = f"/api/posts/{post['id']}/comments/{reply['id']}"

        assert client.delete(url, headers=auth_headers(alice)).status_code == 403
        assert client.delete(url, headers=auth_headers(bob)).status_code == 200
        assert db.query(Comment).count() == 0

    def test_unknown_comment(self, client, thread):
        alice, _, post, _ = thread
        url = f"/api/posts/{post['id']}/comments/{uuid.uuid4()}/like"
        assert client.post(url, headers=auth_headers(alice)).status_code == 404


@pytest.mark.parametrize(
    "handler",
    [posts_router.create_post, posts_router.update_post, users_router.update_profile],
)
def test_upload_handlers_run_in_threadpool(handler):
    assert not inspect.iscoroutinefunction(handler)
