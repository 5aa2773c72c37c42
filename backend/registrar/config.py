from pathlib import Path
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    data_path: Path = Path.home() / "RegistrarPortal"
    storage_backend: str = "sql"  # "sql" or "mongo"
    mongo_url: str = "mongodb://localhost:27017"
    mongo_db: str = "registrar"
    api_prefix: str = "/api/v1"
    log_level: str = "INFO"
    seed_document_types: bool = True

    queue_number_prefix: str = "CDM"
    queue_number_max_attempts: int = 5
    transition_max_attempts: int = 3

    # Payment proof uploads
    max_upload_bytes: int = 10 * 1024 * 1024  # 10 MiB
    allowed_proof_extensions: set[str] = {"png", "jpg", "jpeg", "gif", "pdf"}

    # Outgoing mail; notifications are only logged when no username is set
    mail_server: str = "smtp.gmail.com"
    mail_port: int = 587
    mail_use_tls: bool = True
    mail_username: str | None = None
    mail_password: str | None = None
    mail_sender_name: str = "CDM Document Queue"

    @property
    def db_path(self) -> Path:
        return self.data_path / "registrar.sqlite"

    @property
    def uploads_dir(self) -> Path:
        return self.data_path / "uploads"

    model_config = {"env_prefix": "REGISTRAR_"}


settings = Settings()
