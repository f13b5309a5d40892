import secrets
from pathlib import Path

from pydantic import Field
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    data_path: Path = Path.home() / "jfcase-data"
    api_prefix: str = "/api/v1"
    host: str = "127.0.0.1"
    port: int = 8000
    log_level: str = "INFO"

    # Deadline applied to every request-scoped operation.
    request_timeout_seconds: float = 15

    # "subprocess" shells out to docx_cmd + soffice_cmd, "fpdf" renders in-process.
    renderer_backend: str = "subprocess"
    docx_cmd: str = "siasn-docx"
    docx_args: list[str] = []
    soffice_cmd: str = "soffice"
    soffice_args: list[str] = []
    renderer_timeout_seconds: float = 15

    signing_secret: str = Field(default_factory=lambda: secrets.token_hex(32))
    sign_url_expire_seconds: int = 900
    public_base_url: str = ""
    temp_file_max_age_seconds: int = 24 * 60 * 60
    max_upload_bytes: int = 10 * 1024 * 1024  # 10 MiB

    # Empty disables the admin endpoints.
    admin_token: str = ""
    token_cache_seconds: int = 300

    @property
    def db_path(self) -> Path:
        return self.data_path / "db.sqlite"

    @property
    def storage_path(self) -> Path:
        return self.data_path / "objects"

    @property
    def scratch_dir(self) -> Path:
        return self.data_path / "tmp"

    model_config = {"env_prefix": "JF_"}


settings = Settings()
