import pytest

from conftest import API


@pytest.fixture
def actors(make_employee):
    return {
        "admin": make_employee("ADM1", roles=("admin",)),
        "other_admin": make_employee("ADM2", agency_id="AG2", roles=("admin",)),
        "verifier": make_employee("VER1", agency_id="PUSAT", roles=("verifier",)),
        "subject": make_employee("ASN3", name="Dewi Lestari"),
    }


def _transfer(**overrides):
    body = {
        "asn_id": "ASN3",
        "admission_number": "PGK/2024/5",
        "admission_date": "2024-04-02",
        "promotion_type": 1,
        "promotion_position_id": "JF-PK",
        "promotion_position": "Pranata Komputer Ahli Muda",
        "pak_letter": {"filename": "pak-up.pdf", "document_number": "PAK/1", "document_date": "2024-03-01"},
        "recommendation_letter": {"filename": "rek-up.pdf", "document_number": "REK/1"},
    }
    body.update(overrides)
    return body


@pytest.fixture
def submit(client, actors, temp_file):
    def create(**overrides):
        temp_file("promotion", "pak/pak-up.pdf")
        temp_file("promotion", "recommendation-letter/rek-up.pdf")
        r = client.post(f"{API}/promotions", json=_transfer(**overrides), headers=actors["admin"])
        assert r.status_code == 201, r.text
        return r.json()

    return create


class TestPromotionSubmit:
    def test_transfer(self, submit, registry):
        promotion = submit()
        assert promotion["status"] == 1
        kinds = sorted(d["kind"] for d in promotion["documents"])
        assert kinds == ["pak_letter", "recommendation_letter"]
        storage = registry.get("promotion")
        assert storage.get_metadata(f"pak/{promotion['id']}.pdf").content_length > 0
        assert not storage.exists_temp("pak/pak-up.pdf")

    @pytest.mark.parametrize("overrides,code", [
        ({"asn_id": ""}, 13402),
        ({"admission_number": ""}, 13402),
        ({"admission_date": ""}, 13416),
        ({"admission_date": "2 April 2024"}, 13416),
        ({"promotion_type": 7}, 13403),
        ({"pak_letter": None}, 13406),
        ({"recommendation_letter": None}, 13407),
        ({"promotion_position_id": ""}, 13408),
        ({"promotion_type": 2, "test_certificate": None}, 13415),
        ({"promotion_type": 2, "test_certificate": {"filename": "t.pdf"}, "test_status": 0}, 13402),
        ({"promotion_type": 2, "test_certificate": {"filename": "t.pdf"}, "test_status": 5}, 13405),
    ])
    def test_validation(self, client, actors, overrides, code):
        r = client.post(f"{API}/promotions", json=_transfer(**overrides), headers=actors["admin"])
        assert r.json()["code"] == code

    def test_asn_from_other_agency(self, client, actors, temp_file):
        r = client.post(f"{API}/promotions", json=_transfer(), headers=actors["other_admin"])
        assert r.json()["code"] == 13404

    def test_missing_upload_keeps_other_uploads(self, client, actors, temp_file, registry):
        temp_file("promotion", "pak/pak-up.pdf")
        r = client.post(f"{API}/promotions", json=_transfer(), headers=actors["admin"])
        assert r.json()["code"] == 10416
        assert registry.get("promotion").exists_temp("pak/pak-up.pdf")
        assert client.get(f"{API}/promotions", headers=actors["admin"]).json()["total"] == 0

    def test_in_passing_needs_no_documents(self, client, actors):
        r = client.post(f"{API}/promotions", json=_transfer(promotion_type=3, pak_letter=None,
                                                           recommendation_letter=None), headers=actors["admin"])
        assert r.status_code == 201
        assert r.json()["documents"] == []


class TestPromotionVerification:
    def test_accept_and_letter(self, client, actors, submit, renderer):
        promotion = submit()
        url = f"{API}/promotions/{promotion['id']}"

        r = client.get(f"{url}/promotion-letter", headers=actors["admin"])
        assert r.json()["code"] == 13417

        r = client.post(f"{url}/accept", json={"document_number": "SK/9", "document_date": "2024-05-05"},
                        headers=actors["verifier"])
        assert r.status_code == 200, r.text
        assert r.json()["status"] == 2

        r = client.get(f"{url}/promotion-letter", headers=actors["admin"], follow_redirects=False)
        assert r.status_code == 302
        assert f"promotion-letter/{promotion['id']}.pdf" in r.headers["location"]
        client.get(f"{url}/promotion-letter", headers=actors["admin"], follow_redirects=False)
        assert len(renderer.calls) == 1
        letter = renderer.calls[0]
        assert letter.signed_date == "2024-05-05"
        assert letter.name == "Dewi Lestari"
        assert letter.functional_position == "Pranata Komputer Ahli Muda"

        r = client.post(f"{url}/accept", json={}, headers=actors["verifier"])
        assert r.json()["code"] == 13410
        r = client.post(f"{url}/reject", json={"reason": "x"}, headers=actors["verifier"])
        assert r.json()["code"] == 13409

    def test_signed_date_falls_back_to_status_date(self, client, actors, submit, renderer):
        promotion = submit()
        r = client.post(f"{API}/promotions/{promotion['id']}/accept", json={}, headers=actors["verifier"])
        status_date = r.json()["status_ts"][:10]
        client.get(f"{API}/promotions/{promotion['id']}/promotion-letter", headers=actors["admin"], follow_redirects=False)
        assert renderer.calls[0].signed_date == status_date

    def test_reject(self, client, actors, submit):
        promotion = submit()
        url = f"{API}/promotions/{promotion['id']}"
        r = client.post(f"{url}/reject", json={"reason": "PAK kedaluwarsa"}, headers=actors["verifier"])
        assert r.json()["status"] == 3
        assert client.get(url, headers=actors["admin"]).json()["rejection_reason"] == "PAK kedaluwarsa"
        r = client.post(f"{url}/reject", json={}, headers=actors["verifier"])
        assert r.json()["code"] == 13411

    def test_document_download(self, client, actors, submit):
        promotion = submit()
        url = f"{API}/promotions/{promotion['id']}/documents"
        r = client.get(f"{url}/pak_letter", headers=actors["admin"], follow_redirects=False)
        assert r.status_code == 302
        assert client.get(f"{url}/test_certificate", headers=actors["admin"]).status_code == 404

    def test_filters(self, client, actors, submit):
        submit()
        params = {"promotion_type": 1, "status": 1}
        assert client.get(f"{API}/promotions", params=params, headers=actors["verifier"]).json()["total"] == 1
        r = client.get(f"{API}/promotions", params={"promotion_type": 4}, headers=actors["admin"])
        assert r.json()["code"] == 13414


def _cpns(**overrides):
    body = {
        "asn_id": "ASN3",
        "admission_number": "CPNS/2024/1",
        "admission_date": "2024-07-01",
        "promotion_position_id": "JF-PK",
        "first_credit_number": 50,
        "organization_unit_id": "U1",
        "pak_letter": {"filename": "pak.pdf", "document_number": "PAK/7", "document_date": "2024-06-01"},
        "promotion_letter": {"filename": "sk.pdf", "document_number": "SK/7", "document_date": "2024-06-15"},
    }
    body.update(overrides)
    return body


@pytest.fixture
def submit_cpns(client, actors, temp_file):
    def create(**overrides):
        temp_file("promotion-cpns", "pak/pak.pdf")
        temp_file("promotion-cpns", "promotion-cpns-letter/sk.pdf")
        r = client.post(f"{API}/promotion-cpns", json=_cpns(**overrides), headers=actors["admin"])
        assert r.status_code == 201, r.text
        return r.json()

    return create


class TestPromotionCpns:
    def test_submit_and_accept(self, client, actors, submit_cpns, registry):
        admission = submit_cpns()
        storage = registry.get("promotion-cpns")
        assert storage.get_metadata(f"promotion-cpns-letter/{admission['id']}.pdf")
        assert not storage.exists_temp("pak/pak.pdf")

        r = client.post(f"{API}/promotion-cpns/{admission['id']}/accept", headers=actors["verifier"])
        assert r.json()["status"] == 2
        r = client.post(f"{API}/promotion-cpns/{admission['id']}/accept", headers=actors["verifier"])
        assert r.json()["code"] == 14404
        r = client.post(f"{API}/promotion-cpns/{admission['id']}/reject", json={}, headers=actors["verifier"])
        assert r.json()["code"] == 14402

        listing = client.get(f"{API}/promotion-cpns", headers=actors["admin"]).json()
        assert listing["promotions"][0]["first_credit_number"] == 50

    @pytest.mark.parametrize("overrides", [
        {"asn_id": ""},
        {"organization_unit_id": ""},
        {"admission_date": "2024-02-30"},
        {"pak_letter": {"filename": "pak.pdf", "document_number": "PAK/7"}},
        {"promotion_letter": None},
    ])
    def test_validation(self, client, actors, overrides):
        r = client.post(f"{API}/promotion-cpns", json=_cpns(**overrides), headers=actors["admin"])
        assert r.json()["code"] == 14403

    def test_missing_upload_rolls_back(self, client, actors, temp_file, registry):
        temp_file("promotion-cpns", "pak/pak.pdf")
        r = client.post(f"{API}/promotion-cpns", json=_cpns(), headers=actors["admin"])
        assert r.json()["code"] == 10416
        assert registry.get("promotion-cpns").exists_temp("pak/pak.pdf")
        assert client.get(f"{API}/promotion-cpns", headers=actors["admin"]).json()["total"] == 0

    def test_reject_and_download(self, client, actors, submit_cpns):
        admission = submit_cpns()
        url = f"{API}/promotion-cpns/{admission['id']}"
        r = client.post(f"{url}/reject", json={"reason": "NIP salah"}, headers=actors["verifier"])
        assert r.json()["status"] == 3
        assert client.post(f"{url}/accept", headers=actors["verifier"]).json()["code"] == 14402
        r = client.get(f"{url}/documents/promotion_letter", headers=actors["admin"], follow_redirects=False)
        assert r.status_code == 302
        assert client.get(f"{url}/documents/other", headers=actors["admin"]).status_code == 404
