import json
import sys

import pytest

from jfcase.errors import AppError, ErrorCode
from jfcase.services.renderer import (
    BadTemplateError,
    LoadTemplateError,
    RendererError,
    RendererOutputError,
    RendererTimeoutError,
    SaveTemplateToDocxError,
    SubprocessRenderer,
    classify_failure,
)
from jfcase.services.template_data import PromotionLetter
from jfcase.utils.deadline import Deadline

# Fake docx tool: argv is --json DATA [MODE] TEMPLATE OUTPUT.
FAKE_DOCX = """\
import json, sys, time
args = sys.argv[1:]
data, template, output = args[1], args[-2], args[-1]
mode = args[2] if len(args) > 4 else "ok"
if mode == "bad-template":
    print(json.dumps({"code": 5, "message": "unexpected '}'"}))
    sys.exit(1)
if mode == "garbage":
    print("segmentation fault")
    sys.exit(2)
if mode == "slow":
    time.sleep(5)
with open(output, "w") as f:
    f.write(data)
"""

# Fake office suite: argv is --convert-to pdf --headless --outdir DIR [MODE] DOCX.
FAKE_SOFFICE = """\
import os, sys
args = sys.argv[1:]
outdir, docx = args[4], args[-1]
mode = args[5] if len(args) > 6 else "ok"
if mode == "fail":
    sys.stderr.write("conversion crashed")
    sys.exit(1)
if mode == "silent":
    sys.exit(0)
stem = os.path.splitext(os.path.basename(docx))[0]
with open(os.path.join(outdir, stem + ".pdf"), "wb") as f:
    f.write(b"%PDF-1.4 " + open(docx, "rb").read())
"""


def _script(tmp_path, name, body):
    path = tmp_path / name
    path.write_text(f"#!{sys.executable}\n{body}")
    path.chmod(0o755)
    return str(path)


@pytest.fixture
def tools(tmp_path):
    return _script(tmp_path, "fake-docx", FAKE_DOCX), _script(tmp_path, "fake-soffice", FAKE_SOFFICE)


@pytest.fixture
def template(tmp_path):
    path = tmp_path / "letter.docx"
    path.write_bytes(b"docx template")
    return path


def _renderer(tools, tmp_path, docx_args=None, soffice_args=None, timeout=10):
    docx_cmd, soffice_cmd = tools
    scratch = tmp_path / "scratch"
    scratch.mkdir(exist_ok=True)
    return SubprocessRenderer(
        docx_cmd=docx_cmd,
        docx_args=docx_args,
        soffice_cmd=soffice_cmd,
        soffice_args=soffice_args,
        timeout=timeout,
        scratch_dir=scratch,
    )


DATA = PromotionLetter(
    admission_number="U-1", admission_date="2024-01-02", name="Budi", functional_position="Analis", signed_date="2024-02-01",
)


class TestClassifyFailure:
    def test_known_codes(self):
        assert isinstance(classify_failure('{"code": 3, "message": "disk"}', 1), SaveTemplateToDocxError)
        assert isinstance(classify_failure('{"code": 4, "message": "missing"}', 1), LoadTemplateError)
        err = classify_failure('{"code": 5, "message": "bad"}', 1)
        assert isinstance(err, BadTemplateError)
        assert err.code == 5
        assert "bad syntax in template" in str(err)

    def test_unknown_code_keeps_message(self):
        err = classify_failure('{"code": 42, "message": "odd"}', 1)
        assert type(err) is RendererError
        assert err.code == 42
        assert "odd" in str(err)

    def test_undecodable_output(self):
        err = classify_failure("Traceback (most recent call last)", 139)
        assert isinstance(err, RendererOutputError)
        assert err.exit_code == 139
        assert "cannot decode output message" in str(err)


class TestSubprocessRenderer:
    def test_render_as_pdf(self, tools, tmp_path, template):
        renderer = _renderer(tools, tmp_path)
        output = tmp_path / "out.pdf"
        renderer.render_as_pdf(DATA, template, output)

        content = output.read_bytes()
        assert content.startswith(b"%PDF")
        merged = json.loads(content[len(b"%PDF-1.4 "):])
        assert merged["nomor_usulan"] == "U-1"
        assert merged["tanggal_ttd"] == "2024-02-01"
        assert list((tmp_path / "scratch").iterdir()) == []

    def test_bad_template(self, tools, tmp_path, template):
        renderer = _renderer(tools, tmp_path, docx_args=["bad-template"])
        with pytest.raises(BadTemplateError):
            renderer.render_as_pdf(DATA, template, tmp_path / "out.pdf")
        assert list((tmp_path / "scratch").iterdir()) == []

    def test_garbage_output(self, tools, tmp_path, template):
        renderer = _renderer(tools, tmp_path, docx_args=["garbage"])
        with pytest.raises(RendererOutputError) as exc_info:
            renderer.render(DATA, template, tmp_path / "out.docx")
        assert exc_info.value.exit_code == 2

    def test_timeout(self, tools, tmp_path, template):
        renderer = _renderer(tools, tmp_path, docx_args=["slow"], timeout=0.5)
        with pytest.raises(RendererTimeoutError):
            renderer.render(DATA, template, tmp_path / "out.docx")

    def test_missing_executable(self, tmp_path, template):
        renderer = SubprocessRenderer(docx_cmd=str(tmp_path / "nope"), scratch_dir=tmp_path)
        with pytest.raises(RendererError, match="not found"):
            renderer.render(DATA, template, tmp_path / "out.docx")

    def test_conversion_failure(self, tools, tmp_path, template):
        renderer = _renderer(tools, tmp_path, soffice_args=["fail"])
        output = tmp_path / "out.pdf"
        with pytest.raises(RendererError, match="conversion crashed"):
            renderer.render_as_pdf(DATA, template, output)
        assert not output.exists()

    def test_converter_produces_nothing(self, tools, tmp_path, template):
        renderer = _renderer(tools, tmp_path, soffice_args=["silent"])
        with pytest.raises(RendererError, match="did not produce"):
            renderer.render_as_pdf(DATA, template, tmp_path / "out.pdf")

    def test_empty_paths_rejected(self, tools, tmp_path, template):
        renderer = _renderer(tools, tmp_path)
        with pytest.raises(ValueError):
            renderer.render_as_pdf(DATA, "", tmp_path / "out.pdf")
        with pytest.raises(ValueError):
            renderer.render_as_pdf(DATA, template, "")

    def test_expired_request_deadline(self, tools, tmp_path, template):
        renderer = _renderer(tools, tmp_path)
        with pytest.raises(AppError) as exc_info:
            renderer.render(DATA, template, tmp_path / "out.docx", deadline=Deadline(0))
        assert exc_info.value.code == ErrorCode.REQUEST_TIMEOUT
        assert not (tmp_path / "out.docx").exists()
