import pytest

from conftest import API

VERIFIER_ROLES = ("verifier",)


@pytest.fixture
def actors(make_employee):
    """An agency admin, two attendees in the same agency and a central verifier."""
    return {
        "admin": make_employee("ADM1", roles=("admin",)),
        "other_admin": make_employee("ADM2", agency_id="AG2", roles=("admin",)),
        "verifier": make_employee("VER1", agency_id="PUSAT", roles=VERIFIER_ROLES),
        "att1": make_employee("ATT1", name="Budi Santoso"),
        "att2": make_employee("ATT2", name="Siti Aminah"),
    }


def _payload(**overrides):
    body = {
        "name": "Pelatihan Analis Kebijakan",
        "activity_type": 1,
        "position_grade": "Analis Kebijakan Ahli Pertama",
        "training_year": 2024,
        "duration": 40,
        "admission_number": "ADM/2024/001",
        "start_date": "2024-03-01",
        "end_date": "2024-03-05",
        "attendees": ["ATT1", "ATT2"],
        "support_documents": [{"filename": "support-1.pdf", "document_name": "Surat Tugas"}],
    }
    body.update(overrides)
    return body


@pytest.fixture
def submit(client, actors, temp_file):
    def create(**overrides):
        temp_file("activity", "support/support-1.pdf")
        r = client.post(f"{API}/activities", json=_payload(**overrides), headers=actors["admin"])
        assert r.status_code == 201, r.text
        return r.json()

    return create


def _accept(client, actors, activity_id):
    return client.post(
        f"{API}/activities/{activity_id}/accept",
        json={"attendees": [
            {"asn_id": "ATT1", "is_accepted": True},
            {"asn_id": "ATT2", "is_accepted": False, "reason_rejected": "Tidak memenuhi syarat"},
        ]},
        headers=actors["verifier"],
    )


class TestSubmit:
    def test_submit(self, submit, registry):
        activity = submit()
        assert activity["status"] == 1
        assert activity["admission_date"]
        assert [a["asn_id"] for a in activity["attendees"]] == ["ATT1", "ATT2"]
        assert activity["attendees"][0]["name"] == "Budi Santoso"
        assert [d["filename"] for d in activity["documents"]] == ["support-1.pdf"]
        assert registry.get("activity").get_metadata("support/support-1.pdf").content_length > 0

    def test_missing_upload_rolls_back(self, client, actors):
        r = client.post(f"{API}/activities", json=_payload(), headers=actors["admin"])
        assert r.status_code == 404
        assert r.json()["code"] == 10416
        assert r.json()["data"] == {"missing_files": ["support/support-1.pdf"]}
        listing = client.get(f"{API}/activities", headers=actors["admin"]).json()
        assert listing["total"] == 0

    @pytest.mark.parametrize("overrides,code", [
        ({"attendees": []}, 11402),
        ({"name": ""}, 11403),
        ({"activity_type": 9}, 11404),
        ({"position_grade": ""}, 11406),
        ({"end_date": "2024-02-01"}, 11407),
        ({"start_date": "01-03-2024"}, 11407),
        ({"training_year": 0}, 11408),
        ({"admission_number": ""}, 11410),
        ({"support_documents": []}, 11405),
    ])
    def test_validation(self, client, actors, overrides, code):
        r = client.post(f"{API}/activities", json=_payload(**overrides), headers=actors["admin"])
        assert r.status_code == 400
        assert r.json()["code"] == code

    def test_attendee_from_other_agency(self, client, actors, make_employee, temp_file):
        make_employee("OUT1", agency_id="AG2")
        temp_file("activity", "support/support-1.pdf")
        r = client.post(f"{API}/activities", json=_payload(attendees=["ATT1", "OUT1"]), headers=actors["admin"])
        assert r.status_code == 400
        assert r.json()["code"] == 11401
        assert r.json()["data"] == {"missing_asn_ids": ["OUT1"]}


class TestSearch:
    def test_scoped_to_agency(self, client, actors, submit):
        submit()
        assert client.get(f"{API}/activities", headers=actors["admin"]).json()["total"] == 1
        assert client.get(f"{API}/activities", headers=actors["other_admin"]).json()["total"] == 0
        assert client.get(f"{API}/activities", headers=actors["verifier"]).json()["total"] == 1

    def test_filters(self, client, actors, submit):
        submit()
        r = client.get(f"{API}/activities", params={"status": 2}, headers=actors["admin"])
        assert r.json()["total"] == 0
        r = client.get(f"{API}/activities", params={"status": 9}, headers=actors["admin"])
        assert r.json()["code"] == 11421
        r = client.get(f"{API}/activities", params={"admission_date": "2024/01/01"}, headers=actors["admin"])
        assert r.json()["code"] == 11422
        r = client.get(f"{API}/activities", params={"per_page": 500}, headers=actors["admin"])
        assert r.json()["code"] == 10413

    def test_statistics(self, client, actors, submit):
        submit()
        stats = client.get(f"{API}/activities/statistics", headers=actors["admin"]).json()
        assert {"status": 1, "count": 1} in stats
        assert len(stats) == 5

    def test_detail_forbidden_for_other_agency(self, client, actors, submit):
        activity = submit()
        r = client.get(f"{API}/activities/{activity['id']}", headers=actors["other_admin"])
        assert r.status_code == 403
        assert r.json()["code"] == 11425


class TestVerification:
    def test_accept_once(self, client, actors, submit):
        activity = submit()
        r = _accept(client, actors, activity["id"])
        assert r.status_code == 200, r.text
        first = r.json()
        assert first["status"] == 2

        r = _accept(client, actors, activity["id"])
        assert r.status_code == 400
        assert r.json()["code"] == 11415

        detail = client.get(f"{API}/activities/{activity['id']}", headers=actors["admin"]).json()
        assert detail["status_ts"] == first["status_ts"]
        assert detail["attendees"][1]["accepted_reason_rejected"] == "Tidak memenuhi syarat"

    def test_reject_then_accept(self, client, actors, submit):
        activity = submit()
        r = client.post(f"{API}/activities/{activity['id']}/reject", json={"reason": "duplikat"},
                        headers=actors["verifier"])
        assert r.json()["status"] == 5
        r = _accept(client, actors, activity["id"])
        assert r.json()["code"] == 11414

    def test_accept_requires_attendees(self, client, actors, submit):
        activity = submit()
        r = client.post(f"{API}/activities/{activity['id']}/accept", json={"attendees": []},
                        headers=actors["verifier"])
        assert r.json()["code"] == 11416

    def test_unknown_activity(self, client, actors):
        r = _accept(client, actors, "does-not-exist")
        assert r.status_code == 404
        assert r.json()["code"] == 10417


class TestCertificates:
    def test_cert_request_needs_acceptance(self, client, actors, submit):
        activity = submit()
        r = client.post(f"{API}/activities/{activity['id']}/cert-request",
                        json={"attendees": [{"asn_id": "ATT1", "is_passing": True}]}, headers=actors["admin"])
        assert r.json()["code"] == 11411

    def test_cert_request_twice(self, client, actors, submit):
        activity = submit()
        _accept(client, actors, activity["id"])
        body = {"attendees": [{"asn_id": "ATT1", "is_passing": True}]}
        r = client.post(f"{API}/activities/{activity['id']}/cert-request", json=body, headers=actors["admin"])
        assert r.json()["status"] == 3
        r = client.post(f"{API}/activities/{activity['id']}/cert-request", json=body, headers=actors["admin"])
        assert r.json()["code"] == 11412

    def test_download_generates_once(self, client, actors, submit, renderer):
        activity = submit()
        _accept(client, actors, activity["id"])
        url = f"{API}/activities/{activity['id']}/certificates/ATT1"

        r = client.get(url, headers=actors["admin"], follow_redirects=False)
        assert r.status_code == 302
        assert f"/objects/perm/activity/cert/{activity['id']}-ATT1.pdf" in r.headers["location"]
        client.get(url, headers=actors["admin"], follow_redirects=False)
        assert len(renderer.calls) == 1
        assert renderer.calls[0].name == "Budi Santoso"
        assert renderer.calls[0].qualification == "Diterima"

        client.get(url, params={"force_regenerate": True}, headers=actors["admin"], follow_redirects=False)
        assert len(renderer.calls) == 2

        r = client.get(r.headers["location"])
        assert r.status_code == 200
        assert r.content.startswith(b"%PDF")

    def test_download_before_acceptance(self, client, actors, submit, renderer):
        activity = submit()
        r = client.get(f"{API}/activities/{activity['id']}/certificates/ATT1", headers=actors["admin"],
                       follow_redirects=False)
        assert r.json()["code"] == 11417
        assert renderer.calls == []

    def test_uploaded_certificate_is_served_without_rendering(self, client, actors, submit, renderer):
        activity = submit()
        _accept(client, actors, activity["id"])
        r = client.post(f"{API}/activities/{activity['id']}/certificates/upload-url",
                        json={"attendee_asn_id": "ATT1"}, headers=actors["verifier"])
        assert r.status_code == 200, r.text
        upload = r.json()
        assert upload["filename"] == f"{activity['id']}-ATT1.pdf"
        r = client.put(upload["url"], content=b"%PDF-1.4 signed", headers={"Content-Type": "application/pdf"})
        assert r.status_code == 201

        r = client.post(f"{API}/activities/{activity['id']}/certificates", json={"certificates": [
            {"attendee_asn_id": "ATT1", "document_number": "CERT/1", "document_date": "2024-04-01", "score": 88.5},
            {"attendee_asn_id": "ATT2", "is_passing": False, "reason_rejected": "tidak hadir"},
        ]}, headers=actors["verifier"])
        assert r.status_code == 200, r.text
        assert r.json()["status"] == 4

        r = client.get(f"{API}/activities/{activity['id']}/certificates/ATT1", headers=actors["admin"])
        assert r.content == b"%PDF-1.4 signed"
        assert renderer.calls == []

        detail = client.get(f"{API}/activities/{activity['id']}", headers=actors["admin"]).json()
        assert detail["certificates"] == [{
            "attendee_asn_id": "ATT1", "cert_type": 1, "document_number": "CERT/1",
            "document_date": "2024-04-01", "signer_id": None, "score": 88.5,
        }]

    def test_pak_only_for_mutation_exams(self, client, actors, submit):
        activity = submit()
        _accept(client, actors, activity["id"])
        r = client.post(f"{API}/activities/{activity['id']}/certificates/upload-url",
                        json={"attendee_asn_id": "ATT1", "cert_type": 2}, headers=actors["verifier"])
        assert r.json()["code"] == 11418


class TestRecommendationLetter:
    def test_upload_and_download(self, client, actors, submit):
        activity = submit()
        url = f"{API}/activities/{activity['id']}/recommendation-letter"
        upload = client.post(f"{url}/upload-url", headers=actors["admin"]).json()
        client.put(upload["url"], content=b"%PDF-1.4 letter", headers={"Content-Type": "application/pdf"})

        r = client.post(url, json={"document_number": "REK/1", "document_date": "2024-02-20"},
                        headers=actors["admin"])
        assert r.status_code == 200, r.text
        kinds = [d["kind"] for d in r.json()["documents"]]
        assert kinds.count("recommendation_letter") == 1

        assert client.get(url, headers=actors["admin"]).content == b"%PDF-1.4 letter"

    def test_missing_number(self, client, actors, submit):
        activity = submit()
        r = client.post(f"{API}/activities/{activity['id']}/recommendation-letter", json={},
                        headers=actors["admin"])
        assert r.json()["code"] == 11426

    def test_download_without_letter(self, client, actors, submit):
        activity = submit()
        r = client.get(f"{API}/activities/{activity['id']}/recommendation-letter", headers=actors["admin"])
        assert r.json()["code"] == 11426

    def test_support_document_download(self, client, actors, submit):
        activity = submit()
        base = f"{API}/activities/{activity['id']}/support-documents"
        r = client.get(f"{base}/support-1.pdf", headers=actors["verifier"], follow_redirects=False)
        assert r.status_code == 302
        assert client.get(f"{base}/other.pdf", headers=actors["verifier"]).status_code == 404
