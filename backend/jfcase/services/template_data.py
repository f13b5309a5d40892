"""
Data merged into the docx templates.

Attribute names are English; aliases are the placeholder names used inside the
templates and must stay in sync with them. Records serialize by alias.
"""
from typing import ClassVar

from pydantic import BaseModel, ConfigDict, Field

from jfcase.errors import AppError, ErrorCode


class TemplateData(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    required_fields: ClassVar[tuple[str, ...]] = ()

    def missing_fields(self) -> list[str]:
        """Wire names of required fields that are unset or blank."""
        missing = []
        for name in self.required_fields:
            value = getattr(self, name)
            if value is None or (isinstance(value, (str, list)) and not value):
                missing.append(type(self).model_fields[name].alias or name)
        return missing


def validate_template_data(data: TemplateData) -> TemplateData:
    missing = data.missing_fields()
    if missing:
        raise AppError(
            ErrorCode.DOCUMENT_TEMPLATE_DATA_INVALID,
            f"{type(data).__name__} is missing {', '.join(missing)}",
            data={"missing_fields": missing},
        )
    return data


class ActivityCertificate(TemplateData):
    name: str = Field("", alias="nama")
    nip: str = Field("", alias="nip")
    birth_place: str = Field("", alias="tempat_lahir")
    birth_date: str = Field("", alias="tgl_lahir")
    photo: str = Field("", alias="foto")
    functional_position: str = Field("", alias="jabatan_fungsional")
    agency: str = Field("", alias="instansi")
    organizer_agency: str = Field("", alias="instansi_penyelenggara")
    qualification: str = Field("", alias="kualifikasi")
    activity: str = Field("", alias="kegiatan")
    duration: int = Field(0, alias="durasi")
    admission_number: str = Field("", alias="no_usulan")
    start_date: str = Field("", alias="tgl_mulai")
    end_date: str = Field("", alias="tgl_selesai")
    description: str = Field("", alias="deskripsi")
    document_number: str = Field("", alias="no_dokumen")
    document_date: str = Field("", alias="tgl_dokumen")

    required_fields: ClassVar[tuple[str, ...]] = (
        "name", "nip", "activity", "qualification", "admission_number", "start_date", "end_date",
    )


class RecommendationUnit(TemplateData):
    organization_unit: str = Field("", alias="unit_organisasi")
    bezetting: int = Field(0, alias="bezetting")
    estimation: int = Field(0, alias="perhitungan")
    need: int = Field(0, alias="kebutuhan")
    recommendation: int = Field(0, alias="rekomendasi")


class RecommendationEntry(TemplateData):
    position_grade: str = Field("", alias="jabatan_jenjang_nama")
    subtotal_bezetting: int = Field(0, alias="subtotal_bezetting")
    subtotal_estimation: int = Field(0, alias="subtotal_perhitungan")
    subtotal_need: int = Field(0, alias="subtotal_kebutuhan")
    subtotal_recommendation: int = Field(0, alias="subtotal_rekomendasi")
    units: list[RecommendationUnit] = Field(default_factory=list, alias="unor")

    @classmethod
    def from_units(cls, position_grade: str, units: list[RecommendationUnit]) -> "RecommendationEntry":
        return cls(
            position_grade=position_grade,
            subtotal_bezetting=sum(u.bezetting for u in units),
            subtotal_estimation=sum(u.estimation for u in units),
            subtotal_need=sum(u.need for u in units),
            subtotal_recommendation=sum(u.recommendation for u in units),
            units=units,
        )


class RequirementRecommendationLetter(TemplateData):
    document_number: str = Field("", alias="no_dokumen")
    document_date: str = Field("", alias="tgl_dokumen")
    functional_position: str = Field("", alias="jabatan_fungsional")
    agency: str = Field("", alias="instansi")
    total_estimation: int = Field(0, alias="total_perhitungan")
    total_need: int = Field(0, alias="total_kebutuhan")
    entries: list[RecommendationEntry] = Field(default_factory=list, alias="kebutuhan")

    required_fields: ClassVar[tuple[str, ...]] = ("document_number", "document_date", "entries")


class PromotionLetter(TemplateData):
    admission_number: str = Field("", alias="nomor_usulan")
    admission_date: str = Field("", alias="tanggal_usulan")
    name: str = Field("", alias="nama")
    functional_position: str = Field("", alias="nama_jf")
    signed_date: str = Field("", alias="tanggal_ttd")

    required_fields: ClassVar[tuple[str, ...]] = (
        "admission_number", "admission_date", "name", "functional_position", "signed_date",
    )


class DismissalAcceptanceLetter(TemplateData):
    document_number: str = Field("", alias="no_dokumen")
    document_date: str = Field("", alias="tgl_dokumen")
    decree_number: str = Field("", alias="no_sk")
    decree_date: str = Field("", alias="tgl_sk")
    dismissal_date: str = Field("", alias="tgl_pemberhentian")
    reason: str = Field("", alias="alasan_pemberhentian")
    name: str = Field("", alias="nama")
    nip: str = Field("", alias="nip")
    rank: str = Field("", alias="pangkat")
    functional_position: str = Field("", alias="jabatan_fungsional")
    organization_unit: str = Field("", alias="unor")

    required_fields: ClassVar[tuple[str, ...]] = (
        "document_number", "document_date", "reason", "name", "nip",
    )
