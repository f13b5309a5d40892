"""
Docx template rendering.

The renderer merges JSON data into a docx template and optionally converts the
result to PDF. The default implementation drives two external programs: a
docx templating command and a headless office suite for PDF conversion.
"""
import errno
import json
import logging
import os
import shutil
import subprocess
import tempfile
import uuid
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Any, Mapping

from pydantic import BaseModel

from jfcase.utils.deadline import Deadline

logger = logging.getLogger("jfcase.renderer")

# Exit payload codes written by the docx templating command.
CODE_SAVE_TEMPLATE_TO_DOCX = 3
CODE_LOAD_TEMPLATE = 4
CODE_BAD_TEMPLATE = 5


class RendererError(RuntimeError):
    """Rendering failed. ``code`` is the renderer's own exit payload code, if any."""

    def __init__(self, message: str, code: int | None = None):
        super().__init__(message)
        self.code = code


class SaveTemplateToDocxError(RendererError):
    pass


class LoadTemplateError(RendererError):
    pass


class BadTemplateError(RendererError):
    pass


class RendererOutputError(RendererError):
    """The renderer failed and its output could not be decoded."""

    def __init__(self, message: str, output: str, exit_code: int):
        super().__init__(message)
        self.output = output
        self.exit_code = exit_code


class RendererTimeoutError(RendererError):
    pass


_CLASSIFIED = {
    CODE_SAVE_TEMPLATE_TO_DOCX: (SaveTemplateToDocxError, "cannot save template to docx"),
    CODE_LOAD_TEMPLATE: (LoadTemplateError, "cannot load template"),
    CODE_BAD_TEMPLATE: (BadTemplateError, "bad syntax in template"),
}


def classify_failure(output: str, exit_code: int) -> RendererError:
    """Turn a failed merge run's output into the matching error."""
    try:
        payload = json.loads(output)
        code = int(payload["code"])
        message = str(payload.get("message", ""))
    except (ValueError, TypeError, KeyError) as exc:
        return RendererOutputError(
            f"cannot decode output message from renderer: {exc}, output: {output!r}, exit code: {exit_code}",
            output=output,
            exit_code=exit_code,
        )
    if code in _CLASSIFIED:
        cls, text = _CLASSIFIED[code]
        return cls(f"{text}: {message}", code=code)
    return RendererError(f"{code}: {message}", code=code)


def serialize_data(data: BaseModel | Mapping[str, Any]) -> str:
    if isinstance(data, BaseModel):
        return data.model_dump_json(by_alias=True)
    return json.dumps(dict(data))


def _check_paths(template_path, output_path):
    if not template_path:
        raise ValueError("template path is empty")
    if not output_path:
        raise ValueError("output path is empty")


def move_file(source: Path, destination: Path):
    """Rename ``source`` to ``destination``, copying across filesystems when needed."""
    try:
        os.replace(source, destination)
    except OSError as exc:
        if exc.errno != errno.EXDEV:
            raise
        shutil.copyfile(source, destination)
        source.unlink()


class DocumentRenderer(ABC):
    scratch_dir: Path | None = None

    @abstractmethod
    def render(self, data, template_path: Path, output_path: Path, deadline: Deadline | None = None):
        """Merge ``data`` into the docx template, writing a docx to ``output_path``."""

    @abstractmethod
    def convert_to_pdf(self, docx_path: Path, output_path: Path, deadline: Deadline | None = None):
        """Convert a merged docx to PDF at ``output_path``."""

    def render_as_pdf(self, data, template_path: Path, output_path: Path, deadline: Deadline | None = None):
        _check_paths(template_path, output_path)
        template_path = Path(template_path)
        output_path = Path(output_path)
        merged = Path(self.scratch_dir or tempfile.gettempdir()) / f"compiled-{uuid.uuid4().hex}-{template_path.name}"
        merged.parent.mkdir(parents=True, exist_ok=True)
        try:
            self.render(data, template_path, merged, deadline=deadline)
            self.convert_to_pdf(merged, output_path, deadline=deadline)
        finally:
            if merged.exists():
                merged.unlink()


class SubprocessRenderer(DocumentRenderer):
    def __init__(
        self,
        docx_cmd: str = "siasn-docx",
        docx_args: list[str] | None = None,
        soffice_cmd: str = "soffice",
        soffice_args: list[str] | None = None,
        timeout: float = 15,
        scratch_dir: Path | None = None,
    ):
        self.docx_cmd = docx_cmd
        self.docx_args = list(docx_args or [])
        self.soffice_cmd = soffice_cmd
        self.soffice_args = list(soffice_args or [])
        self.timeout = timeout
        self.scratch_dir = scratch_dir

    def _timeout(self, deadline: Deadline | None) -> float:
        if deadline is None:
            return self.timeout
        return deadline.bound(self.timeout)

    def _run(self, cmd: list[str], deadline: Deadline | None) -> subprocess.CompletedProcess:
        try:
            return subprocess.run(cmd, capture_output=True, text=True, timeout=self._timeout(deadline))
        except FileNotFoundError as exc:
            raise RendererError(f"renderer executable not found: {cmd[0]}") from exc
        except subprocess.TimeoutExpired as exc:
            raise RendererTimeoutError(f"{cmd[0]} did not finish within {exc.timeout}s") from exc

    def render(self, data, template_path: Path, output_path: Path, deadline: Deadline | None = None):
        _check_paths(template_path, output_path)
        cmd = [self.docx_cmd, "--json", serialize_data(data), *self.docx_args, str(template_path), str(output_path)]
        result = self._run(cmd, deadline)
        if result.returncode != 0:
            output = result.stdout.strip() or result.stderr.strip()
            raise classify_failure(output, result.returncode)

    def convert_to_pdf(self, docx_path: Path, output_path: Path, deadline: Deadline | None = None):
        _check_paths(docx_path, output_path)
        docx_path = Path(docx_path)
        out_dir = docx_path.parent
        cmd = [
            self.soffice_cmd, "--convert-to", "pdf", "--headless", "--outdir", str(out_dir),
            *self.soffice_args, str(docx_path),
        ]
        result = self._run(cmd, deadline)
        converted = out_dir / f"{docx_path.stem}.pdf"
        try:
            if result.returncode != 0:
                raise RendererError(
                    f"cannot convert docx to pdf, exit code {result.returncode}: "
                    f"{result.stderr.strip() or result.stdout.strip()}"
                )
            if not converted.is_file():
                raise RendererError(f"converter did not produce {converted.name}")
            move_file(converted, Path(output_path))
        finally:
            if converted.exists():
                converted.unlink()
        logger.debug("Converted %s to %s", docx_path.name, output_path)
