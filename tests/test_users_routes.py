# tests/test_users_routes.py


def test_read_me_parses_invalid_role(client, identity, auth_headers):
    identity.add_user("user_1", "baker@example.com", role="admin", name="Jane")

    response = client.get("/api/v1/users/me", headers=auth_headers("user_1", role="admin"))

    assert response.status_code == 200
    body = response.json()
    assert body["role"] == "customer"
    assert body["role_display_name"] == "Customer"
    assert body["billing_linked"] is False


def test_read_me_for_deleted_user_is_404(client, auth_headers):
    response = client.get("/api/v1/users/me", headers=auth_headers("ghost"))
    assert response.status_code == 404


def test_clear_migration_flag_is_idempotent(client, identity, auth_headers):
    identity.add_user("user_1", "baker@example.com", migrated=True)

    first = client.post("/api/v1/users/me/clear-migration-flag", headers=auth_headers("user_1"))
    second = client.post("/api/v1/users/me/clear-migration-flag", headers=auth_headers("user_1"))

    assert first.json() == {"success": True, "cleared": True}
    assert second.json() == {"success": True, "cleared": False}
    assert identity.users["user_1"].migrated_from_wordpress is False


def test_role_history_requires_auth(client):
    assert client.get("/api/v1/users/me/role-history").status_code == 401


def test_role_history_for_user(client, auth_headers):
    response = client.get("/api/v1/users/me/role-history", headers=auth_headers("user_1"))
    assert response.status_code == 200
    assert response.json() == []
