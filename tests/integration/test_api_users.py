"""Users: login, registration, listing and profile edits over HTTP."""

import pytest

from content_platform.auth.security import create_access_token
from content_platform.db import open_store

from ..conftest import SECRET


def test_bootstrap_admin_can_log_in(client):
    r = client.post("/api/users/token", json={"account": "admin", "password": "admin-pass"})
    assert r.status_code == 200
    body = r.json()
    assert body["token_type"] == "Bearer"

    me = client.get("/api/users/1", headers={"Authorization": f"Bearer {body['access_token']}"})
    assert me.status_code == 200
    assert me.json()["group"] == "administrator"
    assert "password" not in me.json()


def test_login_by_mail_updates_timestamps(client, accounts, cfg):
    sam = accounts["subscriber"]
    r = client.post("/api/users/token", json={"account": "sam@example.com", "password": sam.password})
    assert r.status_code == 200
    with open_store(cfg.DB_DSN) as store:
        row = store.fetch_one('SELECT "activated", "logged" FROM typecho_users WHERE "uid" = ?', (sam.uid,))
    assert row["activated"] > 0 and row["logged"] == row["activated"]


def test_wrong_password(client, accounts):
    r = client.post("/api/users/token", json={"account": "sam", "password": "nope"})
    assert r.status_code == 401
    assert r.json() == {"detail": "wrong_credentials", "field": None}


class TestRegister:
    def test_register_then_login(self, client):
        r = client.post("/api/users/", json={"name": "newbie", "mail": "newbie@example.com", "password": "pw"})
        assert r.status_code == 201
        uid = r.json()["id"]

        r = client.post("/api/users/token", json={"account": "newbie", "password": "pw"})
        token = r.json()["access_token"]
        me = client.get(f"/api/users/{uid}", headers={"Authorization": f"Bearer {token}"})
        assert me.json()["group"] == "subscriber"
        assert me.json()["screenName"] == "newbie"

    def test_duplicate_name(self, client, accounts):
        r = client.post("/api/users/", json={"name": "sam", "mail": "other@example.com", "password": "pw"})
        assert r.status_code == 409
        assert r.json() == {"detail": "already_exists", "field": "name"}

    def test_duplicate_mail(self, client, accounts):
        r = client.post("/api/users/", json={"name": "other", "mail": "sam@example.com", "password": "pw"})
        assert r.status_code == 409
        assert r.json()["field"] == "mail"

    def test_missing_field(self, client):
        r = client.post("/api/users/", json={"name": "x", "password": "pw"})
        assert r.status_code == 400
        assert r.json() == {"detail": "invalid_params", "field": "mail"}

    @pytest.mark.parametrize("field", ["name", "mail", "password"])
    def test_blank_field_is_invalid_params(self, client, field):
        body = {"name": "zed", "mail": "zed@example.com", "password": "pw"}
        body[field] = "  " if field != "password" else ""
        r = client.post("/api/users/", json=body)
        assert r.status_code == 400
        assert r.json() == {"detail": "invalid_params", "field": field}
        assert client.post("/api/users/token", json={"account": "zed", "password": "pw"}).status_code == 401


class TestReadUsers:
    def test_subscriber_reads_self_but_not_others(self, client, accounts):
        sam, carol = accounts["subscriber"], accounts["contributor"]
        r = client.get(f"/api/users/{carol.uid}", headers=sam.headers)
        assert r.status_code == 403
        assert r.json()["detail"] == "permission_denied"

        r = client.get(f"/api/users/{sam.uid}", headers=sam.headers)
        assert r.status_code == 200
        assert r.json()["uid"] == sam.uid
        assert r.json()["name"] == "sam"

    def test_editor_cannot_read_other_users(self, client, accounts):
        r = client.get(f"/api/users/{accounts['subscriber'].uid}", headers=accounts["editor"].headers)
        assert r.status_code == 403

    def test_admin_reads_anyone_and_gets_not_found(self, client, accounts):
        ada = accounts["administrator"]
        assert client.get(f"/api/users/{accounts['subscriber'].uid}", headers=ada.headers).status_code == 200
        r = client.get("/api/users/9999", headers=ada.headers)
        assert r.status_code == 404
        assert r.json()["field"] == "uid"

    def test_list_is_admin_only(self, client, accounts):
        r = client.get("/api/users/", headers=accounts["editor"].headers)
        assert r.status_code == 403

        r = client.get("/api/users/?order_by=name&page_size=2", headers=accounts["administrator"].headers)
        assert r.status_code == 200
        body = r.json()
        assert body["all_count"] == 6
        assert body["count"] == 2
        assert [u["name"] for u in body["results"]] == ["ada", "admin"]
        assert all("password" not in u for u in body["results"])

    @pytest.mark.parametrize("query", ["page=100000000000000000000", "page_size=100000000000000000000", "page_size=101"])
    def test_list_rejects_oversized_paging(self, client, accounts, query):
        r = client.get(f"/api/users/?{query}", headers=accounts["administrator"].headers)
        assert r.status_code == 400
        assert r.json()["detail"] == "invalid_params"
        assert r.json()["field"] == query.split("=")[0]

    def test_list_rejects_unknown_order(self, client, accounts):
        r = client.get("/api/users/?order_by=password", headers=accounts["administrator"].headers)
        assert r.status_code == 400
        assert r.json()["field"] == "order_by"


class TestAuthentication:
    def test_missing_token(self, client):
        r = client.get("/api/users/1")
        assert r.status_code == 401
        assert r.json()["detail"] == "unauthenticated"
        assert r.headers["www-authenticate"] == "Bearer"

    def test_token_for_deleted_user(self, client, accounts, cfg):
        sam = accounts["subscriber"]
        with open_store(cfg.DB_DSN) as store:
            store.execute('DELETE FROM typecho_users WHERE "uid" = ?', (sam.uid,))
        r = client.get(f"/api/users/{sam.uid}", headers=sam.headers)
        assert r.status_code == 401
        assert r.json()["detail"] == "user_not_found"

    def test_token_signed_with_other_secret(self, client, accounts):
        token = create_access_token(secret=SECRET + "x", user_id=accounts["subscriber"].uid, expires_minutes=5)
        r = client.get("/api/users/1", headers={"Authorization": f"Bearer {token}"})
        assert r.status_code == 401


class TestModifyUser:
    def _body(self, **kw):
        body = {"name": "sam", "mail": "sam@example.com", "url": None, "screenName": "Sam", "group": "subscriber"}
        body.update(kw)
        return body

    def test_edit_own_profile(self, client, accounts):
        sam = accounts["subscriber"]
        r = client.patch(f"/api/users/{sam.uid}", json=self._body(url="https://sam.example"), headers=sam.headers)
        assert r.status_code == 200
        assert r.json()["url"] == "https://sam.example"
        assert r.json()["screenName"] == "Sam"

    def test_cannot_promote_self(self, client, accounts):
        sam = accounts["subscriber"]
        r = client.patch(f"/api/users/{sam.uid}", json=self._body(group="administrator"), headers=sam.headers)
        assert r.status_code == 403

    def test_cannot_edit_someone_else(self, client, accounts):
        eve = accounts["editor"]
        sam = accounts["subscriber"]
        r = client.patch(f"/api/users/{sam.uid}", json=self._body(), headers=eve.headers)
        assert r.status_code == 403

    def test_unknown_group(self, client, accounts):
        sam = accounts["subscriber"]
        r = client.patch(f"/api/users/{sam.uid}", json=self._body(group="root"), headers=sam.headers)
        assert r.status_code == 400
        assert r.json()["field"] == "group"

    def test_admin_promotion_applies_to_existing_token(self, client, accounts):
        sam, ada = accounts["subscriber"], accounts["administrator"]
        assert client.get("/api/attachments/", headers=sam.headers).status_code == 200
        r = client.post("/api/posts/", json={"title": "t", "slug": "t", "text": "x"}, headers=sam.headers)
        assert r.status_code == 403

        r = client.patch(f"/api/users/{sam.uid}", json=self._body(group="contributor"), headers=ada.headers)
        assert r.status_code == 200
        assert r.json()["group"] == "contributor"

        r = client.post("/api/posts/", json={"title": "t", "slug": "t", "text": "x"}, headers=sam.headers)
        assert r.status_code == 201

    def test_password_change(self, client, accounts):
        sam = accounts["subscriber"]
        r = client.patch(f"/api/users/{sam.uid}", json=self._body(password="fresh-pw"), headers=sam.headers)
        assert r.status_code == 200
        assert client.post("/api/users/token", json={"account": "sam", "password": sam.password}).status_code == 401
        assert client.post("/api/users/token", json={"account": "sam", "password": "fresh-pw"}).status_code == 200

    def test_blank_name_is_invalid_params(self, client, accounts):
        sam = accounts["subscriber"]
        r = client.patch(f"/api/users/{sam.uid}", json=self._body(name=" "), headers=sam.headers)
        assert r.status_code == 400
        assert r.json()["field"] == "name"

    def test_name_taken_by_someone_else(self, client, accounts):
        sam = accounts["subscriber"]
        r = client.patch(f"/api/users/{sam.uid}", json=self._body(name="carol"), headers=sam.headers)
        assert r.status_code == 409
        assert r.json()["field"] == "name"
