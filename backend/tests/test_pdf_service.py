import pytest

from conftest import make_docx
from jfcase.services.pdf_service import FpdfRenderer, placeholders, read_paragraphs
from jfcase.services.renderer import BadTemplateError, LoadTemplateError
from jfcase.services.template_data import DismissalAcceptanceLetter


class TestPlaceholders:
    def test_collects_names(self, tmp_path):
        path = tmp_path / "t.docx"
        path.write_bytes(make_docx(["Nomor {{ no_dokumen }} tanggal {{tgl_dokumen}}", "", "{{ nama }}"]))
        assert placeholders(read_paragraphs(path)) == {"no_dokumen", "tgl_dokumen", "nama"}

    def test_rejects_spaces_inside_placeholder(self):
        with pytest.raises(BadTemplateError, match="nama instansi"):
            placeholders(["{{ nama instansi }}"])

    def test_not_a_docx(self, tmp_path):
        path = tmp_path / "t.docx"
        path.write_bytes(b"plain text")
        with pytest.raises(LoadTemplateError):
            read_paragraphs(path)


class TestFpdfRenderer:
    def test_render_as_pdf(self, tmp_path):
        template = tmp_path / "letter.docx"
        template.write_bytes(make_docx(["Nomor {{ no_dokumen }}", "{{ nama }} - {{ alasan_pemberhentian }}"]))
        data = DismissalAcceptanceLetter(
            document_number="800/1", document_date="2024-03-01", reason="Mengundurkan diri", name="Sri", nip="1980",
        )
        renderer = FpdfRenderer(scratch_dir=tmp_path)
        output = tmp_path / "letter.pdf"
        renderer.render_as_pdf(data, template, output)

        assert output.read_bytes().startswith(b"%PDF")
        assert sorted(p.name for p in tmp_path.iterdir()) == ["letter.docx", "letter.pdf"]

    def test_merge_substitutes_and_escapes(self, tmp_path):
        template = tmp_path / "t.docx"
        template.write_bytes(make_docx(["{{ nama }} / {{ unknown }}"]))
        merged = tmp_path / "merged.docx"
        FpdfRenderer().render({"nama": "A & B"}, template, merged)
        assert read_paragraphs(merged) == ["A & B / "]

    def test_placeholder_split_across_runs(self, tmp_path):
        template = tmp_path / "t.docx"
        template.write_bytes(make_docx(["Nama: {{ na</w:t></w:r><w:r><w:t>ma }}", "NIP {{ nip }}"]))
        merged = tmp_path / "merged.docx"
        FpdfRenderer().render({"nama": "Budi", "nip": "1980"}, template, merged)
        assert read_paragraphs(merged) == ["Nama: Budi", "NIP 1980"]

    def test_bad_template(self, tmp_path):
        template = tmp_path / "t.docx"
        template.write_bytes(make_docx(["{{ nama lengkap }}"]))
        with pytest.raises(BadTemplateError):
            FpdfRenderer(scratch_dir=tmp_path).render_as_pdf({}, template, tmp_path / "out.pdf")
