"""In-process docx rendering with fpdf, for hosts without the docx tool or an office suite."""
import io
import re
import zipfile
from pathlib import Path
from xml.etree import ElementTree

from fpdf import FPDF
from pydantic import BaseModel

from jfcase.services.renderer import (
    BadTemplateError,
    DocumentRenderer,
    LoadTemplateError,
    RendererError,
    SaveTemplateToDocxError,
    _check_paths,
)
from jfcase.utils.deadline import Deadline

DOCUMENT_XML = "word/document.xml"
_W = "{http://schemas.openxmlformats.org/wordprocessingml/2006/main}"
PLACEHOLDER_RE = re.compile(r"\{\{(.*?)\}\}", re.DOTALL)
IDENTIFIER_RE = re.compile(r"^[A-Za-z_][A-Za-z0-9_.]*$")
XML_SPACE = "{http://www.w3.org/XML/1998/namespace}space"


def _latin1(text: str) -> str:
    """The core fpdf fonts only cover latin-1; anything else becomes "?"."""
    return text.encode("latin-1", errors="replace").decode("latin-1")


def _as_dict(data) -> dict:
    if isinstance(data, BaseModel):
        return data.model_dump(by_alias=True)
    return dict(data)


def _format_value(value) -> str:
    if value is None:
        return ""
    if isinstance(value, list):
        return "; ".join(_format_value(v) for v in value)
    if isinstance(value, dict):
        return ", ".join(f"{k}: {_format_value(v)}" for k, v in value.items())
    return str(value)


def read_paragraphs(docx_path: Path) -> list[str]:
    try:
        with zipfile.ZipFile(docx_path) as zf:
            root = ElementTree.fromstring(zf.read(DOCUMENT_XML))
    except (zipfile.BadZipFile, KeyError, ElementTree.ParseError, OSError) as exc:
        raise LoadTemplateError(f"cannot load template: {exc}") from exc
    paragraphs = []
    for p in root.iter(f"{_W}p"):
        paragraphs.append("".join(t.text or "" for t in p.iter(f"{_W}t")))
    return paragraphs


def placeholders(paragraphs: list[str]) -> set[str]:
    """Placeholder identifiers used by the template. Raises BadTemplateError on bad syntax."""
    names = set()
    for text in paragraphs:
        for match in PLACEHOLDER_RE.finditer(text):
            name = match.group(1).strip()
            if not IDENTIFIER_RE.match(name):
                raise BadTemplateError(f"bad syntax in template: placeholder {match.group(0)!r}")
            names.add(name)
    return names


def _register_namespaces(content: bytes):
    """Keep the document's own prefixes when the tree is written back."""
    for _, (prefix, uri) in ElementTree.iterparse(io.BytesIO(content), events=("start-ns",)):
        try:
            ElementTree.register_namespace(prefix, uri)
        except ValueError:
            # ElementTree reserves ns0, ns1 ...; such prefixes get renamed on output.
            continue


def _merge_paragraph(paragraph, values: dict):
    # Word splits text into runs freely, so placeholders are matched on the
    # joined text and the result goes back into the paragraph's first run.
    nodes = list(paragraph.iter(f"{_W}t"))
    text = "".join(t.text or "" for t in nodes)
    if not PLACEHOLDER_RE.search(text):
        return
    nodes[0].text = PLACEHOLDER_RE.sub(lambda m: values.get(m.group(1).strip(), ""), text)
    nodes[0].set(XML_SPACE, "preserve")
    for t in nodes[1:]:
        t.text = ""


def merge_document_xml(content: bytes, values: dict) -> bytes:
    _register_namespaces(content)
    root = ElementTree.fromstring(content)
    for paragraph in root.iter(f"{_W}p"):
        _merge_paragraph(paragraph, values)
    return ElementTree.tostring(root, encoding="UTF-8", xml_declaration=True)


class FpdfRenderer(DocumentRenderer):
    def __init__(self, scratch_dir: Path | None = None):
        self.scratch_dir = scratch_dir

    def render(self, data, template_path: Path, output_path: Path, deadline: Deadline | None = None):
        _check_paths(template_path, output_path)
        if deadline is not None:
            deadline.check("rendering")
        placeholders(read_paragraphs(Path(template_path)))
        values = {k: _format_value(v) for k, v in _as_dict(data).items()}

        try:
            with zipfile.ZipFile(template_path) as src, \
                    zipfile.ZipFile(output_path, "w", zipfile.ZIP_DEFLATED) as dst:
                for item in src.infolist():
                    content = src.read(item.filename)
                    if item.filename == DOCUMENT_XML:
                        content = merge_document_xml(content, values)
                    dst.writestr(item, content)
        except (zipfile.BadZipFile, OSError, ElementTree.ParseError) as exc:
            raise SaveTemplateToDocxError(f"cannot save template to docx: {exc}") from exc

    def convert_to_pdf(self, docx_path: Path, output_path: Path, deadline: Deadline | None = None):
        _check_paths(docx_path, output_path)
        if deadline is not None:
            deadline.check("converting to pdf")
        try:
            paragraphs = read_paragraphs(Path(docx_path))
        except LoadTemplateError as exc:
            raise RendererError(f"cannot read merged document: {exc}") from exc

        pdf = FPDF()
        pdf.set_margins(20, 20, 20)
        pdf.add_page()
        pdf.set_font("Helvetica", "", 11)
        for text in paragraphs:
            if text.strip():
                pdf.multi_cell(0, 6, _latin1(text), new_x="LMARGIN", new_y="NEXT")
            else:
                pdf.ln(4)
        Path(output_path).write_bytes(bytes(pdf.output()))
