import time

import pytest

from conftest import ADMIN_TOKEN, API, MINIMAL_PDF, CountingRenderer, make_docx
from jfcase.config import settings
from jfcase.errors import AppError, ErrorCode
from jfcase.services.generator import DocumentGenerator, ensure_generated
from jfcase.services.template_data import PromotionLetter
from jfcase.services.template_repository import Template, TemplateRepository
from jfcase.utils.deadline import Deadline

KEY = "promotion-letter/p1.pdf"

LETTER = PromotionLetter(
    admission_number="U-7", admission_date="2024-01-02", name="Budi", functional_position="Analis",
    signed_date="2024-02-01",
)


@pytest.fixture
def storage(registry):
    return registry.get("promotion")


@pytest.fixture
def generator(renderer, seed_templates):
    return DocumentGenerator(renderer, TemplateRepository(seed_templates, scratch_dir=settings.scratch_dir))


class TestEnsureGenerated:
    def test_missing(self, storage):
        assert ensure_generated(storage, KEY) is False

    def test_present_pdf(self, storage):
        storage.put(KEY, "application/pdf", MINIMAL_PDF)
        assert ensure_generated(storage, KEY) is True
        assert ensure_generated(storage, KEY, force_regenerate=True) is False

    def test_empty_or_wrong_type_is_regenerated(self, storage):
        storage.put(KEY, "application/pdf", b"")
        assert ensure_generated(storage, KEY) is False
        storage.put(KEY, "application/msword", MINIMAL_PDF)
        assert ensure_generated(storage, KEY) is False

    def test_content_type_parameters_ignored(self, storage):
        storage.put(KEY, "Application/PDF; charset=binary", MINIMAL_PDF)
        assert ensure_generated(storage, KEY) is True


class TestDocumentGenerator:
    def test_renders_once(self, generator, renderer, storage):
        builds = []

        def build():
            builds.append(1)
            return LETTER

        assert generator.get_or_generate(storage, KEY, Template.PROMOTION_LETTER, build) is True
        assert generator.get_or_generate(storage, KEY, Template.PROMOTION_LETTER, build) is False
        assert len(renderer.calls) == 1
        assert len(builds) == 1
        assert storage.get_metadata(KEY).content_type == "application/pdf"

    def test_force_regenerate(self, generator, renderer, storage):
        generator.get_or_generate(storage, KEY, Template.PROMOTION_LETTER, lambda: LETTER)
        generator.get_or_generate(storage, KEY, Template.PROMOTION_LETTER, lambda: LETTER, force_regenerate=True)
        assert len(renderer.calls) == 2

    def test_incomplete_data_is_rejected_before_rendering(self, generator, renderer, storage):
        incomplete = LETTER.model_copy(update={"signed_date": ""})
        with pytest.raises(AppError) as exc_info:
            generator.generate(storage, incomplete, Template.PROMOTION_LETTER, KEY)
        assert exc_info.value.code == ErrorCode.DOCUMENT_TEMPLATE_DATA_INVALID
        assert exc_info.value.data == {"missing_fields": ["tanggal_ttd"]}
        assert renderer.calls == []
        assert ensure_generated(storage, KEY) is False

    def test_missing_template(self, generator, seed_templates, storage):
        seed_templates.delete(Template.PROMOTION_LETTER.key)
        with pytest.raises(AppError) as exc_info:
            generator.generate(storage, LETTER, Template.PROMOTION_LETTER, KEY)
        assert exc_info.value.code == ErrorCode.DOCUMENT_GENERATE
        assert "does not exist" in exc_info.value.detail

    def test_scratch_files_removed(self, generator, storage):
        generator.generate(storage, LETTER, Template.PROMOTION_LETTER, KEY)
        assert list(settings.scratch_dir.iterdir()) == []

    def test_deadline_passing_during_render_stores_nothing(self, seed_templates, storage):
        class SlowRenderer(CountingRenderer):
            def render(self, data, template_path, output_path, deadline=None):
                time.sleep(0.2)
                super().render(data, template_path, output_path, deadline)

        renderer = SlowRenderer()
        renderer.scratch_dir = settings.scratch_dir
        generator = DocumentGenerator(renderer, TemplateRepository(seed_templates, scratch_dir=settings.scratch_dir))
        with pytest.raises(AppError) as exc_info:
            generator.generate(storage, LETTER, Template.PROMOTION_LETTER, KEY, deadline=Deadline(0.1))
        assert exc_info.value.code == ErrorCode.REQUEST_TIMEOUT
        assert len(renderer.calls) == 1
        assert ensure_generated(storage, KEY) is False


class TestTemplateName:
    def test_accepted_forms(self):
        for name in ("promotion/promotion-letter", "promotion/promotion-letter.docx",
                     "template/promotion/promotion-letter.docx"):
            assert Template.from_name(name) is Template.PROMOTION_LETTER

    def test_unknown(self):
        with pytest.raises(AppError) as exc_info:
            Template.from_name("promotion/other")
        assert exc_info.value.code == ErrorCode.TEMPLATE_NAME_INVALID


class TestTemplatesRouter:
    headers = {"X-Admin-Token": ADMIN_TOKEN}

    def test_list(self, client):
        r = client.get(f"{API}/templates", headers=self.headers)
        assert r.status_code == 200
        items = {t["name"]: t for t in r.json()}
        assert set(items) == {t.value for t in Template}
        assert all(t["present"] for t in items.values())

    def test_requires_admin_token(self, client):
        r = client.get(f"{API}/templates")
        assert r.status_code == 401
        assert r.json()["code"] == 10419

    def test_replace(self, client):
        content = make_docx(["{{ nama }} {{ nama_jf }}"])
        r = client.put(
            f"{API}/templates/promotion/promotion-letter",
            files={"file": ("letter.docx", content)},
            headers=self.headers,
        )
        assert r.status_code == 200, r.text
        assert r.json()["placeholders"] == ["nama", "nama_jf"]
        assert r.json()["size"] == len(content)

    def test_replace_with_bad_placeholder(self, client):
        r = client.put(
            f"{API}/templates/promotion/promotion-letter",
            files={"file": ("letter.docx", make_docx(["{{ nama instansi }}"]))},
            headers=self.headers,
        )
        assert r.status_code == 400
        assert r.json()["code"] == 10424

    def test_replace_with_non_docx(self, client):
        r = client.put(
            f"{API}/templates/promotion/promotion-letter",
            files={"file": ("letter.docx", b"not a zip")},
            headers=self.headers,
        )
        assert r.status_code == 400
        assert r.json()["code"] == 10415

    def test_unknown_template(self, client):
        r = client.put(
            f"{API}/templates/unknown/thing",
            files={"file": ("x.docx", make_docx(["x"]))},
            headers=self.headers,
        )
        assert r.status_code == 400
        assert r.json()["code"] == 10428
