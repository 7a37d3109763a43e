"""
tests/test_csrf.py -- Request-forgery protection, both off (default) and on.

With CSRF_ENABLED=false state-changing posts need no token. With it on, every
POST on the web router must carry the session's token in the _csrf form
field or the X-CSRF-Token header.
"""

from __future__ import annotations

from conftest import extract_csrf, login
from fastapi.testclient import TestClient


def test_disabled_by_default_accepts_tokenless_posts(web_client: TestClient) -> None:
    assert web_client.app.state.security.csrf_enabled is False
    assert login(web_client).headers["location"] == "/dashboard"


def test_enabled_rejects_tokenless_login(make_client) -> None:
    client = make_client(csrf_enabled=True)
    resp = login(client)
    assert resp.status_code == 403
    assert "Forbidden" in resp.text


def test_enabled_rejects_wrong_token(make_client) -> None:
    client = make_client(csrf_enabled=True)
    client.get("/login")
    resp = login(client, _csrf="not-the-token")
    assert resp.status_code == 403


def test_enabled_accepts_form_token(make_client) -> None:
    client = make_client(csrf_enabled=True)
    token = extract_csrf(client.get("/login").text)
    resp = login(client, _csrf=token)
    assert resp.status_code == 302
    assert resp.headers["location"] == "/dashboard"


def test_enabled_accepts_header_token(make_client) -> None:
    client = make_client(csrf_enabled=True)
    token = extract_csrf(client.get("/register").text)
    resp = client.post(
        "/register",
        data={"username": "bob", "password": "trade-all-day", "confirm_password": "trade-all-day"},
        headers={"X-CSRF-Token": token},
    )
    assert resp.status_code == 302
    assert resp.headers["location"] == "/login?registered"


def test_token_rotates_on_login(make_client) -> None:
    client = make_client(csrf_enabled=True)
    before = extract_csrf(client.get("/login").text)
    login(client, _csrf=before)
    after = extract_csrf(client.get("/dashboard").text)
    assert after != before


def test_logout_requires_token(make_client) -> None:
    client = make_client(csrf_enabled=True)
    login(client, _csrf=extract_csrf(client.get("/login").text))
    assert client.post("/perform_logout").status_code == 403

    token = extract_csrf(client.get("/dashboard").text)
    resp = client.post("/perform_logout", data={"_csrf": token})
    assert resp.status_code == 302
    assert resp.headers["location"] == "/login?logout"


def test_get_logout_refused_when_enabled(make_client) -> None:
    client = make_client(csrf_enabled=True)
    login(client, _csrf=extract_csrf(client.get("/login").text))
    resp = client.get("/perform_logout")
    assert resp.status_code == 405
    assert client.get("/dashboard").status_code == 200
