from conftest import ADMIN_TOKEN, API
from jfcase.services.auth_service import auth_service

ADMIN = {"X-Admin-Token": ADMIN_TOKEN}


def _body(asn_id="ASN1", nip="198001012000011001", **extra):
    return {"asn_id": asn_id, "nip": nip, "name": "Sri Rahayu", "agency_id": "AG1", "agency": "Kementerian A",
            **extra}


class TestEmployees:
    def test_create_and_me(self, client):
        r = client.post(f"{API}/employees", json=_body(roles=["verifier"]), headers=ADMIN)
        assert r.status_code == 201, r.text
        data = r.json()
        assert data["token"].startswith("ASN1.")
        assert data["employee"]["roles"] == ["verifier"]

        r = client.get(f"{API}/employees/me", headers={"Authorization": f"Bearer {data['token']}"})
        assert r.status_code == 200
        assert r.json()["name"] == "Sri Rahayu"
        assert r.json()["agency_id"] == "AG1"

    def test_token_hash_stored_not_token(self, client, test_db):
        from jfcase.models import Employee

        token = client.post(f"{API}/employees", json=_body(), headers=ADMIN).json()["token"]
        db = test_db()
        try:
            stored = db.query(Employee).filter(Employee.asn_id == "ASN1").one().token_hash
        finally:
            db.close()
        assert stored.startswith("$argon2")
        assert token.split(".", 1)[1] not in stored

    def test_duplicate(self, client):
        client.post(f"{API}/employees", json=_body(), headers=ADMIN)
        r = client.post(f"{API}/employees", json=_body(asn_id="ASN2"), headers=ADMIN)
        assert r.status_code == 409

    def test_requires_admin_token(self, client):
        r = client.post(f"{API}/employees", json=_body())
        assert r.status_code == 401
        assert r.json()["code"] == 10419

    def test_unknown_role(self, client):
        r = client.post(f"{API}/employees", json=_body(roles=["root"]), headers=ADMIN)
        assert r.status_code == 400
        assert r.json()["code"] == 10410

    def test_dot_in_asn_id(self, client):
        r = client.post(f"{API}/employees", json=_body(asn_id="A.1"), headers=ADMIN)
        assert r.status_code == 400

    def test_rotate_invalidates_old_token(self, client):
        old = client.post(f"{API}/employees", json=_body(), headers=ADMIN).json()["token"]
        assert client.get(f"{API}/employees/me", headers={"Authorization": f"Bearer {old}"}).status_code == 200

        r = client.post(f"{API}/employees/ASN1/token", headers=ADMIN)
        assert r.status_code == 200
        new = r.json()["token"]

        assert client.get(f"{API}/employees/me", headers={"Authorization": f"Bearer {old}"}).status_code == 401
        assert client.get(f"{API}/employees/me", headers={"Authorization": f"Bearer {new}"}).status_code == 200

    def test_rotate_unknown(self, client):
        assert client.post(f"{API}/employees/NOPE/token", headers=ADMIN).status_code == 404


class TestAuthentication:
    def test_missing_header(self, client):
        r = client.get(f"{API}/employees/me")
        assert r.status_code == 401
        assert r.json()["code"] == 10419

    def test_malformed_token(self, client):
        r = client.get(f"{API}/employees/me", headers={"Authorization": "Bearer nodot"})
        assert r.status_code == 401

    def test_wrong_secret(self, client, make_employee):
        make_employee("ASN1")
        r = client.get(f"{API}/employees/me", headers={"Authorization": "Bearer ASN1.wrong"})
        assert r.status_code == 401

    def test_verified_tokens_are_cached(self, client, make_employee):
        headers = make_employee("ASN1")
        client.get(f"{API}/employees/me", headers=headers)
        token = headers["Authorization"][7:]
        assert token in auth_service._verified

    def test_role_required(self, client, make_employee):
        headers = make_employee("ADM1")
        r = client.post(f"{API}/activities/any-id/accept", json={"attendees": []}, headers=headers)
        assert r.status_code == 403
        assert r.json()["code"] == 10512

    def test_empty_agency(self, client, make_employee):
        headers = make_employee("ASN9", agency_id="")
        r = client.get(f"{API}/employees/me", headers=headers)
        assert r.status_code == 403
        assert r.json()["code"] == 10422
