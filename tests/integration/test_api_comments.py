"""Comments on posts."""

from ..conftest import new_post


def comment(client, account, slug, text="nice post", **kw):
    return client.post(f"/api/posts/{slug}/comments/", json={"text": text, **kw}, headers=account.headers)


class TestCreateComment:
    def test_moderation_status(self, client, accounts):
        carol, sam, eve = accounts["contributor"], accounts["subscriber"], accounts["editor"]
        new_post(client, carol, "talk")

        r = comment(client, sam, "talk")
        assert r.status_code == 201
        assert r.json()["status"] == "waiting"
        assert r.json()["author"] == "sam"
        assert r.json()["ownerId"] == carol.uid

        assert comment(client, carol, "talk").json()["status"] == "approved"
        assert comment(client, eve, "talk").json()["status"] == "approved"

    def test_unknown_post(self, client, accounts):
        r = comment(client, accounts["subscriber"], "missing")
        assert r.status_code == 404
        assert r.json()["field"] == "slug"

    def test_comments_closed(self, client, accounts):
        new_post(client, accounts["contributor"], "closed", allowComment="0")
        r = comment(client, accounts["subscriber"], "closed")
        assert r.status_code == 403

    def test_reply_must_belong_to_same_post(self, client, accounts):
        carol, sam = accounts["contributor"], accounts["subscriber"]
        new_post(client, carol, "a")
        new_post(client, carol, "b")
        on_a = comment(client, carol, "a").json()["coid"]

        assert comment(client, sam, "a", parent=on_a).status_code == 201
        r = comment(client, sam, "b", parent=on_a)
        assert r.status_code == 400
        assert r.json()["field"] == "parent"

    def test_anonymous_cannot_comment(self, client, accounts):
        new_post(client, accounts["contributor"], "talk")
        r = client.post("/api/posts/talk/comments/", json={"text": "hi"})
        assert r.status_code == 401


class TestListComments:
    def test_public_list_shows_only_approved(self, client, accounts):
        carol, sam = accounts["contributor"], accounts["subscriber"]
        new_post(client, carol, "talk")
        comment(client, sam, "talk", text="pending")
        comment(client, carol, "talk", text="reply from author")

        r = client.get("/api/posts/talk/comments/")
        assert r.status_code == 200
        body = r.json()
        assert body["all_count"] == 1
        assert [c["text"] for c in body["results"]] == ["reply from author"]

    def test_own_comments_are_scoped(self, client, accounts):
        carol, sam, eve = accounts["contributor"], accounts["subscriber"], accounts["editor"]
        new_post(client, carol, "talk")
        comment(client, sam, "talk")
        comment(client, carol, "talk")
        comment(client, carol, "talk")

        r = client.get("/api/comments/?private=true", headers=sam.headers)
        assert r.json()["all_count"] == 1
        assert r.json()["results"][0]["authorId"] == sam.uid

        r = client.get("/api/comments/?private=true&order_by=created", headers=eve.headers)
        assert r.json()["all_count"] == 3

    def test_order_key_checked(self, client, accounts):
        r = client.get("/api/comments/?order_by=text", headers=accounts["subscriber"].headers)
        assert r.status_code == 400


class TestDeleteComment:
    def test_author_or_editor(self, client, accounts):
        carol, sam, chris, eve = (
            accounts["contributor"],
            accounts["subscriber"],
            accounts["contributor2"],
            accounts["editor"],
        )
        new_post(client, carol, "talk")
        mine = comment(client, sam, "talk").json()["coid"]
        other = comment(client, sam, "talk").json()["coid"]

        assert client.delete(f"/api/comments/{mine}", headers=chris.headers).status_code == 403
        assert client.delete(f"/api/comments/{mine}", headers=sam.headers).status_code == 200
        assert client.delete(f"/api/comments/{other}", headers=eve.headers).status_code == 200
        assert client.delete(f"/api/comments/{other}", headers=eve.headers).status_code == 404
