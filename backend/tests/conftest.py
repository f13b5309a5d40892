import io
import zipfile
from pathlib import Path

import pytest
from fastapi import Request
from fastapi.testclient import TestClient
from sqlalchemy.orm import sessionmaker

from jfcase.config import settings
from jfcase.database import get_db, get_engine, init_db
from jfcase.dependencies import get_renderer, get_storage_registry
from jfcase.main import app
from jfcase.services.auth_service import auth_service
from jfcase.services.renderer import DocumentRenderer
from jfcase.services.template_repository import DOCX_CONTENT_TYPE, Template

API = "/api/v1"
ADMIN_TOKEN = "test-admin-token"
MINIMAL_PDF = b"%PDF-1.4\n1 0 obj << /Type /Catalog >> endobj\ntrailer << /Root 1 0 R >>\n%%EOF\n"

_CONTENT_TYPES = (
    '<?xml version="1.0" encoding="UTF-8"?>'
    '<Types xmlns="http://schemas.openxmlformats.org/package/2006/content-types">'
    '<Default Extension="xml" ContentType="application/xml"/>'
    '</Types>'
)


def make_docx(paragraphs: list[str]) -> bytes:
    """A docx holding just enough of word/document.xml for placeholder parsing."""
    body = "".join(f"<w:p><w:r><w:t>{p}</w:t></w:r></w:p>" for p in paragraphs)
    document = (
        '<?xml version="1.0" encoding="UTF-8"?>'
        '<w:document xmlns:w="http://schemas.openxmlformats.org/wordprocessingml/2006/main">'
        f"<w:body>{body}</w:body></w:document>"
    )
    buf = io.BytesIO()
    with zipfile.ZipFile(buf, "w") as zf:
        zf.writestr("[Content_Types].xml", _CONTENT_TYPES)
        zf.writestr("word/document.xml", document)
    return buf.getvalue()


TEMPLATE_PARAGRAPHS = {
    Template.ACTIVITY_CERTIFICATE: ["Sertifikat {{ nama }} ({{ nip }})", "{{ kegiatan }}: {{ kualifikasi }}"],
    Template.REQUIREMENT_RECOMMENDATION_LETTER: ["Nomor {{ no_dokumen }}", "{{ instansi }} {{ total_kebutuhan }}"],
    Template.PROMOTION_LETTER: ["Usulan {{ nomor_usulan }} {{ tanggal_usulan }}", "{{ nama }} {{ nama_jf }}"],
    Template.DISMISSAL_ACCEPTANCE_LETTER: ["Nomor {{ no_dokumen }}", "{{ nama }} {{ alasan_pemberhentian }}"],
}


class CountingRenderer(DocumentRenderer):
    """Records every render call and writes a tiny PDF instead of shelling out."""

    def __init__(self):
        self.scratch_dir = None
        self.calls = []

    def render(self, data, template_path, output_path, deadline=None):
        self.calls.append(data)
        Path(output_path).write_bytes(Path(template_path).read_bytes())

    def convert_to_pdf(self, docx_path, output_path, deadline=None):
        Path(output_path).write_bytes(MINIMAL_PDF)


@pytest.fixture
def data_dir(tmp_path):
    original = (settings.data_path, settings.admin_token, settings.renderer_backend)
    settings.data_path = tmp_path / "data"
    settings.admin_token = ADMIN_TOKEN
    settings.renderer_backend = "fpdf"
    (settings.data_path / "objects").mkdir(parents=True)
    (settings.data_path / "tmp").mkdir()
    yield settings.data_path
    settings.data_path, settings.admin_token, settings.renderer_backend = original


@pytest.fixture
def test_db(data_dir):
    engine = get_engine(settings.db_path)
    init_db(settings.db_path)
    TestSession = sessionmaker(bind=engine, autoflush=False, autocommit=False, expire_on_commit=False)

    def override_get_db(request: Request):
        db = TestSession()
        db.info["deadline"] = getattr(request.state, "deadline", None)
        try:
            yield db
        finally:
            db.close()

    app.dependency_overrides[get_db] = override_get_db
    yield TestSession
    app.dependency_overrides.clear()
    engine.dispose()


@pytest.fixture
def registry(data_dir):
    return get_storage_registry()


@pytest.fixture
def renderer(data_dir):
    r = CountingRenderer()
    r.scratch_dir = settings.scratch_dir
    return r


@pytest.fixture
def seed_templates(registry):
    storage = registry.get("template")
    for template, paragraphs in TEMPLATE_PARAGRAPHS.items():
        storage.put(template.key, DOCX_CONTENT_TYPE, make_docx(paragraphs))
    return storage


@pytest.fixture
def client(data_dir, test_db, renderer, seed_templates):
    auth_service.clear()
    app.dependency_overrides[get_renderer] = lambda: renderer
    with TestClient(app) as c:
        yield c
    auth_service.clear()


@pytest.fixture
def make_employee(client):
    """Create an employee through the admin endpoint and return auth headers for it."""
    counter = {"n": 0}

    def create(asn_id: str, agency_id: str = "AG1", roles: tuple[str, ...] = (), **fields) -> dict:
        counter["n"] += 1
        body = {
            "asn_id": asn_id,
            "nip": fields.pop("nip", f"19800101{counter['n']:010d}"),
            "name": fields.pop("name", f"Pegawai {asn_id}"),
            "agency_id": agency_id,
            "agency": fields.pop("agency", f"Instansi {agency_id}"),
            "roles": list(roles),
            **fields,
        }
        r = client.post(f"{API}/employees", json=body, headers={"X-Admin-Token": ADMIN_TOKEN})
        assert r.status_code == 201, r.text
        return {"Authorization": f"Bearer {r.json()['token']}"}

    return create


@pytest.fixture
def temp_file(registry):
    """Place an object in a namespace's temporary area, as a signed PUT would."""

    def put(namespace: str, key: str, content: bytes = MINIMAL_PDF, content_type: str = "application/pdf"):
        registry.get(namespace).put_temp(key, content_type, content)
        return key.rsplit("/", 1)[-1]

    return put
