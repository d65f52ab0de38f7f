"""
End-to-end tests for the cookie-session server
"""
import pytest

LOGIN = {"username": "admin", "password": "1234"}


def login(client):
    return client.post("/login", data=LOGIN, follow_redirects=False)


class TestPublicPages:

    @pytest.mark.parametrize("path", ["/", "/about", "/welcome", "/login"])
    def test_public_page(self, session_client, path):
        response = session_client.get(path)
        assert response.status_code == 200
        assert response.headers["content-type"].startswith("text/html")

    def test_login_page_has_form(self, session_client):
        body = session_client.get("/login").text
        assert 'name="username"' in body
        assert 'name="password"' in body

    def test_security_headers(self, session_client):
        response = session_client.get("/")
        assert response.headers["X-Content-Type-Options"] == "nosniff"
        assert response.headers["X-Frame-Options"] == "DENY"
        assert "Referrer-Policy" in response.headers


class TestFormLogin:

    def test_login_redirects_to_dashboard_with_cookie(self, session_client):
        response = login(session_client)

        assert response.status_code == 302
        assert response.headers["location"] == "/dashboard"
        set_cookie = response.headers["set-cookie"]
        assert set_cookie.startswith("session=")
        assert "HttpOnly" in set_cookie
        assert "Max-Age=86400" in set_cookie
        assert "Path=/" in set_cookie

    def test_dashboard_with_cookie(self, session_client):
        login(session_client)

        response = session_client.get("/dashboard", follow_redirects=False)

        assert response.status_code == 200
        assert "admin" in response.text

    def test_profile_with_cookie(self, session_client):
        login(session_client)
        assert session_client.get("/profile", follow_redirects=False).status_code == 200

    @pytest.mark.parametrize("form", [
        {"username": "admin", "password": "wrong"},
        {"username": "root", "password": "1234"},
        {"username": "admin"},
        {},
    ])
    def test_bad_login(self, session_client, form):
        response = session_client.post("/login", data=form, follow_redirects=False)

        assert response.status_code == 401
        assert response.text == "Invalid login"
        assert "set-cookie" not in response.headers


class TestProtectedPages:

    @pytest.mark.parametrize("path", ["/dashboard", "/profile"])
    def test_no_cookie_redirects_to_login(self, session_client, path):
        response = session_client.get(path, follow_redirects=False)

        assert response.status_code == 302
        assert response.headers["location"] == "/login"

    def test_tampered_cookie_redirects_to_login(self, session_client):
        cookie_value = login(session_client).cookies["session"]
        session_client.cookies.clear()
        tampered = cookie_value[:-1] + ("A" if cookie_value[-1] != "A" else "B")

        response = session_client.get("/dashboard", headers={"Cookie": f"session={tampered}"}, follow_redirects=False)

        assert response.status_code == 302
        assert response.headers["location"] == "/login"


class TestLogout:

    def test_logout_clears_cookie_and_redirects_home(self, session_client):
        login(session_client)

        response = session_client.get("/logout", follow_redirects=False)

        assert response.status_code == 302
        assert response.headers["location"] == "/"
        assert "Max-Age=0" in response.headers["set-cookie"]

    def test_old_cookie_rejected_after_logout(self, session_client):
        cookie_value = login(session_client).cookies["session"]
        session_client.get("/logout", follow_redirects=False)
        session_client.cookies.clear()

        response = session_client.get(
            "/dashboard",
            headers={"Cookie": f"session={cookie_value}"},
            follow_redirects=False,
        )

        assert response.status_code == 302
        assert response.headers["location"] == "/login"

    def test_logout_without_session(self, session_client):
        response = session_client.get("/logout", follow_redirects=False)
        assert response.status_code == 302
