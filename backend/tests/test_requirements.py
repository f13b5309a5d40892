import time

import pytest

from conftest import API
from jfcase.config import settings


@pytest.fixture
def actors(make_employee):
    actors = {
        "admin": make_employee("ADM1", roles=("admin",)),
        "other_admin": make_employee("ADM2", agency_id="AG2", roles=("admin",)),
        "verifier": make_employee("VER1", agency_id="PUSAT", roles=("verifier",)),
        "supervisor": make_employee("SUP1", agency_id="PUSAT", roles=("supervisor",)),
    }
    # Two current holders in U1, none in U2.
    make_employee("JF1", functional_position_id="JF-AK", organization_unit_id="U1")
    make_employee("JF2", functional_position_id="JF-AK", organization_unit_id="U1")
    make_employee("JF3", functional_position_id="JF-OTHER", organization_unit_id="U2")
    return actors


def _payload(**overrides):
    body = {
        "functional_position_id": "JF-AK",
        "functional_position": "Analis Kebijakan",
        "fiscal_year": 2025,
        "admission_number": "KEB/2025/01",
        "counts": [
            {"organization_unit_id": "U1", "organization_unit": "Biro Umum", "count": 5},
            {"organization_unit_id": "U2", "organization_unit": "Biro Hukum", "count": 3},
        ],
        "estimation_documents": [{"filename": "est-1.xlsx"}],
        "cover_letter": {"filename": "cover.pdf", "document_name": "Surat Pengantar", "document_number": "SP/1"},
    }
    body.update(overrides)
    return body


@pytest.fixture
def submit(client, actors, temp_file):
    def create(headers=None, **overrides):
        temp_file("requirement", "estimation/est-1.xlsx", b"xlsx", "application/vnd.ms-excel")
        temp_file("requirement", "cover-letter/cover.pdf")
        r = client.post(f"{API}/requirements", json=_payload(**overrides), headers=headers or actors["admin"])
        assert r.status_code == 201, r.text
        return r.json()

    return create


def _accept(client, actors, requirement_id, **body):
    return client.post(f"{API}/requirements/{requirement_id}/accept", json=body, headers=actors["verifier"])


class TestSubmit:
    def test_submit_computes_bezetting(self, submit, registry):
        requirement = submit()
        assert requirement["status"] == 1
        counts = {c["organization_unit_id"]: c for c in requirement["counts"]}
        assert counts["U1"]["bezetting"] == 2
        assert counts["U2"]["bezetting"] == 0
        kinds = sorted(d["kind"] for d in requirement["documents"])
        assert kinds == ["cover_letter", "estimation"]
        storage = registry.get("requirement")
        assert storage.get_metadata(f"cover-letter/{requirement['id']}.pdf").content_length > 0
        assert not storage.exists_temp("cover-letter/cover.pdf")

    @pytest.mark.parametrize("overrides,code", [
        ({"functional_position_id": ""}, 16401),
        ({"counts": []}, 16402),
        ({"counts": [{"organization_unit_id": "U1", "count": 0}]}, 16402),
        ({"estimation_documents": []}, 16403),
        ({"cover_letter": None}, 16404),
        ({"cover_letter": {"filename": "cover.pdf"}}, 16404),
        ({"fiscal_year": 0}, 16405),
        ({"admission_number": ""}, 16406),
    ])
    def test_validation(self, client, actors, overrides, code):
        r = client.post(f"{API}/requirements", json=_payload(**overrides), headers=actors["admin"])
        assert r.json()["code"] == code

    def test_missing_estimation_upload(self, client, actors, temp_file, registry):
        temp_file("requirement", "cover-letter/cover.pdf")
        r = client.post(f"{API}/requirements", json=_payload(), headers=actors["admin"])
        assert r.json()["code"] == 10416
        assert client.get(f"{API}/requirements", headers=actors["admin"]).json()["total"] == 0
        # The upload survives so the submission can be retried.
        assert registry.get("requirement").exists_temp("cover-letter/cover.pdf")

    def test_upload_url_per_document(self, client, actors):
        r = client.post(f"{API}/requirements/upload-url/estimation",
                        json={"content_type": "application/vnd.ms-excel"}, headers=actors["admin"])
        assert r.status_code == 200
        assert r.json()["filename"].endswith(".xls")
        assert "/objects/temp/requirement/estimation/" in r.json()["url"]

        r = client.post(f"{API}/requirements/upload-url/photo",
                        json={"content_type": "application/pdf"}, headers=actors["admin"])
        assert r.json()["code"] == 10417


class TestVerification:
    def test_accept_with_recommendations(self, client, actors, submit):
        requirement = submit()
        r = _accept(client, actors, requirement["id"], cover_letter_note="lengkap",
                    estimation_document_notes=[{"filename": "est-1.xlsx", "note": "ok"}],
                    recommendations=[{"organization_unit_id": "U1", "recommendation": 4}])
        assert r.status_code == 200, r.text
        assert r.json()["status"] == 3

        detail = client.get(f"{API}/requirements/{requirement['id']}", headers=actors["admin"]).json()
        counts = {c["organization_unit_id"]: c for c in detail["counts"]}
        assert counts["U1"]["recommendation"] == 4
        notes = {d["kind"]: d["note"] for d in detail["documents"]}
        assert notes == {"cover_letter": "lengkap", "estimation": "ok"}

        r = _accept(client, actors, requirement["id"])
        assert r.json()["code"] == 16410

    def test_unknown_estimation_document(self, client, actors, submit):
        requirement = submit()
        r = _accept(client, actors, requirement["id"],
                    estimation_document_notes=[{"filename": "nope.xlsx", "note": "?"}])
        assert r.status_code == 404
        assert r.json()["data"] == {"invalid_estimation_document": "nope.xlsx"}
        detail = client.get(f"{API}/requirements/{requirement['id']}", headers=actors["admin"]).json()
        assert detail["status"] == 1

    def test_revision_then_edit(self, client, actors, submit, temp_file):
        requirement = submit()
        url = f"{API}/requirements/{requirement['id']}"

        r = client.post(f"{url}/revision", json={}, headers=actors["verifier"])
        assert r.json()["code"] == 16416
        r = client.post(f"{url}/revision", json={"reason": "perbaiki jumlah"}, headers=actors["verifier"])
        assert r.json()["status"] == 2
        assert client.get(url, headers=actors["admin"]).json()["note"] == "perbaiki jumlah"

        temp_file("requirement", "estimation/est-2.xlsx", b"xlsx2", "application/vnd.ms-excel")
        body = _payload(
            counts=[{"organization_unit_id": "U1", "count": 7}],
            estimation_documents=[{"filename": "est-2.xlsx"}],
            cover_letter=None,
        )
        r = client.put(url, json=body, headers=actors["admin"])
        assert r.status_code == 200, r.text
        edited = r.json()
        assert edited["status"] == 1
        assert edited["note"] is None
        assert [(c["organization_unit_id"], c["count"], c["bezetting"]) for c in edited["counts"]] == [("U1", 7, 2)]
        docs = {d["kind"]: d["filename"] for d in edited["documents"]}
        assert docs["estimation"] == "est-2.xlsx"
        assert docs["cover_letter"] == f"{requirement['id']}.pdf"

    def test_edit_outside_revision(self, client, actors, submit):
        requirement = submit()
        r = client.put(f"{API}/requirements/{requirement['id']}", json=_payload(), headers=actors["admin"])
        assert r.json()["code"] == 16415

    def test_other_agency_cannot_edit(self, client, actors, submit):
        requirement = submit()
        r = client.put(f"{API}/requirements/{requirement['id']}", json=_payload(), headers=actors["other_admin"])
        assert r.status_code == 404


class TestRecommendationLetter:
    def _letter(self, client, actors, ids, **overrides):
        body = {
            "requirement_ids": ids,
            "document_number": "REK/2025/7",
            "document_date": "2025-02-01",
            "signer_asn_id": "SUP1",
        }
        body.update(overrides)
        return client.post(f"{API}/requirements/recommendation-letters", json=body, headers=actors["verifier"])

    def test_bulk_letter_and_sign(self, client, actors, submit, renderer):
        first, second = submit(), submit()
        for r in (first, second):
            _accept(client, actors, r["id"], recommendations=[{"organization_unit_id": "U1", "recommendation": 2}])

        r = self._letter(client, actors, [first["id"], second["id"]])
        assert r.status_code == 201, r.text
        filename = r.json()["filename"]
        assert len(renderer.calls) == 1
        data = renderer.calls[0]
        assert data.total_estimation == 16
        assert data.entries[0].units[0].need == -3
        assert data.agency == "Instansi AG1"

        for requirement in (first, second):
            detail = client.get(f"{API}/requirements/{requirement['id']}", headers=actors["admin"]).json()
            assert detail["status"] == 4
            letter = [d for d in detail["documents"] if d["kind"] == "recommendation_letter"]
            assert letter[0]["filename"] == filename
            assert letter[0]["is_signed"] is False

        r = client.get(f"{API}/requirements/{first['id']}/recommendation-letter", headers=actors["admin"],
                       follow_redirects=False)
        assert r.status_code == 302
        assert f"recommendation-letter/{filename}" in r.headers["location"]

        r = client.post(f"{API}/requirements/recommendation-letters/sign", json={"filename": filename},
                        headers=actors["verifier"])
        assert r.status_code == 403
        r = client.post(f"{API}/requirements/recommendation-letters/sign", json={"filename": filename},
                        headers=actors["supervisor"])
        assert sorted(r.json()["requirement_ids"]) == sorted([first["id"], second["id"]])
        detail = client.get(f"{API}/requirements/{first['id']}", headers=actors["admin"]).json()
        letter = [d for d in detail["documents"] if d["kind"] == "recommendation_letter"][0]
        assert letter["is_signed"] is True
        assert letter["signer_id"] == "SUP1"

    def test_requires_accepted(self, client, actors, submit, renderer):
        requirement = submit()
        r = self._letter(client, actors, [requirement["id"]])
        assert r.json()["code"] == 16413
        assert r.json()["data"] == {"invalid_requirement_ids": [requirement["id"]]}
        assert renderer.calls == []

    def test_requires_same_agency(self, client, actors, submit, make_employee):
        ours = submit()
        theirs = submit(headers=actors["other_admin"])
        for r in (ours, theirs):
            _accept(client, actors, r["id"])
        r = self._letter(client, actors, [ours["id"], theirs["id"]])
        assert r.json()["code"] == 16414

    def test_unknown_ids(self, client, actors):
        r = self._letter(client, actors, ["nope"])
        assert r.status_code == 404
        assert r.json()["data"] == {"invalid_requirement_ids": ["nope"]}

    def test_signer_must_be_supervisor(self, client, actors, submit):
        requirement = submit()
        _accept(client, actors, requirement["id"])
        r = self._letter(client, actors, [requirement["id"]], signer_asn_id="VER1")
        assert r.json()["code"] == 10512

    def test_incomplete_letter(self, client, actors):
        assert self._letter(client, actors, [], document_number="").json()["code"] == 16412
        assert self._letter(client, actors, ["x"], document_date="01/02/2025").json()["code"] == 16412

    def test_sign_unknown(self, client, actors):
        r = client.post(f"{API}/requirements/recommendation-letters/sign", json={"filename": "nope.pdf"},
                        headers=actors["supervisor"])
        assert r.status_code == 404

    def test_timed_out_letter_is_not_committed(self, client, actors, submit, renderer, registry, monkeypatch):
        requirement = submit()
        _accept(client, actors, requirement["id"], recommendations=[{"organization_unit_id": "U1", "recommendation": 2}])
        render = renderer.render

        def slow_render(*args, **kwargs):
            time.sleep(1.5)
            render(*args, **kwargs)

        monkeypatch.setattr(renderer, "render", slow_render)
        monkeypatch.setattr(settings, "request_timeout_seconds", 1)
        r = self._letter(client, actors, [requirement["id"]])
        assert r.status_code == 504
        assert r.json()["code"] == 10516

        monkeypatch.undo()
        detail = client.get(f"{API}/requirements/{requirement['id']}", headers=actors["admin"]).json()
        assert detail["status"] == 3
        assert [d for d in detail["documents"] if d["kind"] == "recommendation_letter"] == []
        assert list(registry.get("requirement").list_permanent("recommendation-letter/")) == []
