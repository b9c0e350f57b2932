import os
from functools import lru_cache
from pathlib import Path
from typing import List

from dotenv import load_dotenv

load_dotenv()


class Settings:
    def __init__(self) -> None:
        base_dir = Path(__file__).resolve().parent.parent.parent
        self.APP_NAME: str = os.getenv("APP_NAME", "Gestao de Acoes API")
        self.SECRET_KEY: str = os.getenv("SECRET_KEY", "dev-secret-change-me")
        self.ACCESS_TOKEN_EXPIRE_HOURS: int = int(os.getenv("ACCESS_TOKEN_EXPIRE_HOURS", "8"))
        self.ALGORITHM: str = os.getenv("ALGORITHM", "HS256")
        self.SQLALCHEMY_DATABASE_URI: str = os.getenv(
            "SQLALCHEMY_DATABASE_URI",
            f"sqlite:///{(base_dir / 'gestao_acoes.db').as_posix()}",
        )
        self.ENV: str = os.getenv("ENV", "development")
        self.LOCAL_CACHE_DIR: str = os.getenv("LOCAL_CACHE_DIR", str(base_dir / "cache"))
        self.MAX_ATTACHMENT_BYTES: int = int(os.getenv("MAX_ATTACHMENT_BYTES", str(10 * 1024 * 1024)))

        self.ADMIN_PROVISIONING_TOKEN: str = os.getenv("ADMIN_PROVISIONING_TOKEN", "")
        self.MASTER_ADMIN_CPF: str = os.getenv("MASTER_ADMIN_CPF", "")
        self.MASTER_ADMIN_PASSWORD: str = os.getenv("MASTER_ADMIN_PASSWORD", "")
        self.MASTER_ADMIN_NAME: str = os.getenv("MASTER_ADMIN_NAME", "Administrador Master")

        self.EMAIL_API_URL: str = os.getenv("EMAIL_API_URL", "https://api.resend.com/emails")
        self.EMAIL_API_KEY: str = os.getenv("EMAIL_API_KEY", "")
        self.EMAIL_FROM: str = os.getenv("EMAIL_FROM", "nao-responda@gestaoacoes.com.br")

        default_cors = [
            "http://localhost",
            "http://localhost:3000",
            "http://localhost:5173",
            "http://localhost:8080",
            "http://127.0.0.1",
            "http://127.0.0.1:3000",
            "http://127.0.0.1:5173",
            "http://127.0.0.1:8080",
            "capacitor://localhost",
        ]
        cors_origins = os.getenv("BACKEND_CORS_ORIGINS")
        self.BACKEND_CORS_ORIGINS: List[str] = (
            [origin.strip() for origin in cors_origins.split(",") if origin.strip()]
            if cors_origins
            else default_cors
        )


@lru_cache
def get_settings() -> Settings:
    return Settings()


settings = get_settings()
