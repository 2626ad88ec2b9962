from pathlib import Path
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    data_path: Path = Path.home() / "ApplicantTracking"
    api_prefix: str = "/api/v1"
    log_level: str = "INFO"

    # Uploaded CVs are held in memory before they reach the blob store.
    max_upload_bytes: int = 10 * 1024 * 1024  # 10 MiB
    allowed_upload_types: list[str] = [
        "application/pdf",
        "application/msword",
        "application/vnd.openxmlformats-officedocument.wordprocessingml.document",
    ]

    stage_move_max_retries: int = 3

    sendgrid_api_key: str | None = None
    mail_from: str = "noreply@example.com"
    mail_from_name: str = "Hiring Team"

    @property
    def db_path(self) -> Path:
        return self.data_path / "ats.sqlite"

    @property
    def blob_dir(self) -> Path:
        return self.data_path / "blobs"

    model_config = {"env_prefix": "ATS_"}


settings = Settings()
