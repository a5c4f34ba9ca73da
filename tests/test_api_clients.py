"""Client account API — CRUD, validation, role guard and tenant isolation."""

from tests.conftest import auth_headers, signup


class TestClientCrud:
    def test_create_and_get(self, client, owner_headers, agency_client):
        assert agency_client["company_name"] == "Brand Corp"
        res = client.get(f"/api/v1/clients/{agency_client['id']}", headers=owner_headers)
        assert res.status_code == 200
        assert res.get_json()["email"] == "carla@brandcorp.com"

    def test_list_newest_first(self, client, owner_headers, agency_client):
        client.post("/api/v1/clients", json={
            "name": "Second", "email": "second@brandcorp.com", "company_name": "Second Co",
        }, headers=owner_headers)
        res = client.get("/api/v1/clients", headers=owner_headers)
        assert res.status_code == 200
        names = [c["name"] for c in res.get_json()]
        assert names == ["Second", "Carla Client"]

    def test_partial_update(self, client, owner_headers, agency_client):
        res = client.patch(
            f"/api/v1/clients/{agency_client['id']}", json={"phone": "+1 555 0100"}, headers=owner_headers,
        )
        assert res.status_code == 200
        data = res.get_json()
        assert data["phone"] == "+1 555 0100"
        assert data["name"] == "Carla Client"

    def test_empty_update_rejected(self, client, owner_headers, agency_client):
        res = client.patch(f"/api/v1/clients/{agency_client['id']}", json={}, headers=owner_headers)
        assert res.status_code == 400
        assert res.get_json()["error"] == "At least one field is required"

    def test_delete(self, client, owner_headers, agency_client):
        res = client.delete(f"/api/v1/clients/{agency_client['id']}", headers=owner_headers)
        assert res.status_code == 200
        assert res.get_json() == {"success": True}
        res = client.get(f"/api/v1/clients/{agency_client['id']}", headers=owner_headers)
        assert res.status_code == 404


class TestClientValidation:
    def test_invalid_email_reports_issues(self, client, owner_headers):
        res = client.post("/api/v1/clients", json={
            "name": "Bad", "email": "not-an-email", "company_name": "Bad Co",
        }, headers=owner_headers)
        assert res.status_code == 400
        body = res.get_json()
        assert body["error"] == "Validation failed"
        assert any(issue["path"] == "email" for issue in body["issues"])

    def test_missing_name(self, client, owner_headers):
        res = client.post("/api/v1/clients", json={
            "email": "x@brandcorp.com", "company_name": "X",
        }, headers=owner_headers)
        assert res.status_code == 400


class TestClientAccess:
    def test_editor_forbidden(self, client, editor_headers):
        res = client.get("/api/v1/clients", headers=editor_headers)
        assert res.status_code == 403

    def test_anonymous_unauthorized(self, client):
        assert client.get("/api/v1/clients").status_code == 401

    def test_other_tenant_sees_404(self, client, agency_client):
        other = signup(client, slug="rival-studio")
        res = client.get(f"/api/v1/clients/{agency_client['id']}", headers=auth_headers(other["token"]))
        assert res.status_code == 404
