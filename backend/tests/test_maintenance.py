from datetime import datetime, timedelta, timezone

import pytest

from conftest import ADMIN_TOKEN, API, MINIMAL_PDF
from jfcase.services import maintenance_service

ADMIN = {"X-Admin-Token": ADMIN_TOKEN}


class TestPurgeTemp:
    def test_only_expired_objects_go(self, registry):
        storage = registry.get("dismissal")
        storage.put_temp("dismissal-support/old.pdf", "application/pdf", MINIMAL_PDF)

        assert maintenance_service.purge_temp(storage, 3600) == []
        later = datetime.now(timezone.utc) + timedelta(hours=2)
        assert maintenance_service.purge_temp(storage, 3600, now=later) == ["dismissal-support/old.pdf"]
        assert not storage.exists_temp("dismissal-support/old.pdf")

    def test_endpoint(self, client, registry):
        registry.get("activity").put_temp("support/a.pdf", "application/pdf", MINIMAL_PDF)
        registry.get("requirement").put_temp("estimation/b.xls", "application/vnd.ms-excel", b"xls")

        r = client.post(f"{API}/maintenance/purge-temp", params={"max_age_seconds": -1}, headers=ADMIN)
        assert r.status_code == 200, r.text
        assert r.json() == {
            "max_age_seconds": -1,
            "deleted": {"activity": ["support/a.pdf"], "requirement": ["estimation/b.xls"]},
        }

    def test_requires_admin_token(self, client):
        assert client.post(f"{API}/maintenance/purge-temp").status_code == 401


class TestSweepOrphans:
    @pytest.fixture
    def team(self, client, make_employee, temp_file):
        headers = make_employee("ADM1", roles=("admin",))
        temp_file("assessment-team", "support/kept.pdf")
        body = {
            "functional_position_id": "JF-PK",
            "admission_number": "TPK/1",
            "assessors": [{"asn_id": f"A{i}", "role": 2} for i in range(3)],
            "support_documents": [{"filename": "kept.pdf"}],
        }
        r = client.post(f"{API}/assessment-teams", json=body, headers=headers)
        assert r.status_code == 201, r.text
        return r.json()

    def test_dry_run_then_delete(self, client, registry, team):
        storage = registry.get("assessment-team")
        storage.put("support/orphan.pdf", "application/pdf", MINIMAL_PDF)
        url = f"{API}/maintenance/sweep-orphans/assessment-team"

        r = client.post(url, headers=ADMIN)
        assert r.json() == {"case_type": "assessment-team", "dry_run": True, "orphans": ["support/orphan.pdf"]}
        assert storage.get_metadata("support/orphan.pdf")

        r = client.post(url, params={"dry_run": False}, headers=ADMIN)
        assert r.json()["orphans"] == ["support/orphan.pdf"]
        assert [m.filename for m in storage.list_permanent()] == ["support/kept.pdf"]

    def test_untracked_subdirs_are_left_alone(self, client, registry, team):
        registry.get("assessment-team").put("elsewhere/x.pdf", "application/pdf", MINIMAL_PDF)
        r = client.post(f"{API}/maintenance/sweep-orphans/assessment-team", headers=ADMIN)
        assert r.json()["orphans"] == []

    def test_unknown_case_type(self, client):
        r = client.post(f"{API}/maintenance/sweep-orphans/leave-request", headers=ADMIN)
        assert r.json()["code"] == 10417
