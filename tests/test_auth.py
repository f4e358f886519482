from hamromart.security.utils import create_refresh_token

from conftest import make_user, auth_headers, PASSWORD


def login(client, email="customer@example.com", password=PASSWORD):
    return client.post("/api/v1/auth/login", json={"email": email, "password": password})


class TestLogin:
    def test_issues_token_pair(self, client, customer):
        r = login(client)
        assert r.status_code == 200, r.text
        body = r.json()
        assert body["token_type"] == "bearer"
        me = client.get("/api/v1/auth/me", headers={"Authorization": f"Bearer {body['access_token']}"})
        assert me.json()["id"] == customer.id

    def test_email_is_case_insensitive(self, client, customer):
        assert login(client, email="Customer@Example.com").status_code == 200

    def test_wrong_password(self, client, customer):
        r = login(client, password="Wrong123")
        assert r.status_code == 401
        assert r.json() == {"detail": "Invalid credentials"}

    def test_disabled_account(self, client, db):
        make_user(db, email="off@example.com", is_active=False)
        assert login(client, email="off@example.com").status_code == 401


class TestRefreshAndLogout:
    def test_refresh_rotates(self, client, customer):
        tokens = login(client).json()

        r = client.post("/api/v1/auth/refresh", json={"refresh_token": tokens["refresh_token"]})
        assert r.status_code == 200
        assert r.json()["refresh_token"] != tokens["refresh_token"]

        reused = client.post("/api/v1/auth/refresh", json={"refresh_token": tokens["refresh_token"]})
        assert reused.status_code == 401

    def test_logout_revokes(self, client, customer):
        tokens = login(client).json()
        assert client.post("/api/v1/auth/logout", json={"refresh_token": tokens["refresh_token"]}).status_code == 200
        r = client.post("/api/v1/auth/refresh", json={"refresh_token": tokens["refresh_token"]})
        assert r.status_code == 401

    def test_unknown_refresh_token(self, client, customer):
        token, _, _ = create_refresh_token(customer.id)
        assert client.post("/api/v1/auth/refresh", json={"refresh_token": token}).status_code == 401

    def test_access_token_is_not_a_refresh_token(self, client, customer):
        access = login(client).json()["access_token"]
        assert client.post("/api/v1/auth/refresh", json={"refresh_token": access}).status_code == 401


class TestProfile:
    def test_requires_token(self, client):
        assert client.get("/api/v1/auth/me").status_code == 401
        assert client.get("/api/v1/auth/me", headers={"Authorization": "Bearer nope"}).status_code == 401

    def test_update_own_profile(self, client, customer):
        r = client.patch("/api/v1/auth/me", json={"city": "Bhaktapur", "phone_number": "9822222222"},
                         headers=auth_headers(customer))
        assert r.status_code == 200, r.text
        assert r.json()["city"] == "Bhaktapur"
        assert r.json()["first_name"] == "Sita"
