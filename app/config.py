from pathlib import Path

from pydantic_settings import BaseSettings, SettingsConfigDict

ENV_PATH = Path(__file__).resolve().parent.parent / ".env.local"


class Settings(BaseSettings):
    # Environment settings
    environment: str = "development"
    debug: bool = False
    LOG_LEVEL: str = "INFO"

    # Public surface
    PUBLIC_BASE_URL: str = "http://localhost:8000"
    ORG_NAME: str = "Ad-Hoc Distribution"
    APP_DISPLAY_NAME: str = "App"
    CORS_ALLOWED_ORIGINS: str = "*"

    # App Store Connect API
    ASC_ISSUER_ID: str = ""
    ASC_KEY_ID: str = ""
    ASC_PRIVATE_KEY: str = ""
    ASC_API_BASE: str = "https://api.appstoreconnect.apple.com"

    # GitHub Actions pipeline
    GITHUB_OWNER: str = ""
    GITHUB_REPO: str = ""
    GITHUB_WORKFLOW_ID: str = "build-adhoc.yml"
    GITHUB_TOKEN: str = ""
    GITHUB_REF: str = "main"

    # SMTP
    SMTP_HOST: str = ""
    SMTP_PORT: int = 587
    SMTP_USER: str = ""
    SMTP_PASS: str = ""
    EMAIL_FROM: str = "no-reply@example.com"

    # Optional mobileconfig signing material (PEM)
    SSL_CERT: str = ""
    SSL_KEY: str = ""

    # Admin endpoints (placeholder credential, see app/auth/verify.py)
    ADMIN_USER: str = "admin"
    ADMIN_PASS: str = "admin"

    model_config = SettingsConfigDict(
        env_file=str(ENV_PATH),
        env_file_encoding="utf-8",
        extra="ignore",
    )

    def asc_private_key_pem(self) -> str:
        """
        Private key in PEM form.

        Keys pasted into a single-line env var usually carry literal "\\n"
        sequences instead of newlines.
        """
        return self.ASC_PRIVATE_KEY.replace("\\n", "\n")

    def missing_required(self) -> list[str]:
        """Names of critical settings that are still empty."""
        required = {
            "PUBLIC_BASE_URL": self.PUBLIC_BASE_URL,
            "ASC_ISSUER_ID": self.ASC_ISSUER_ID,
            "ASC_KEY_ID": self.ASC_KEY_ID,
            "ASC_PRIVATE_KEY": self.ASC_PRIVATE_KEY,
            "GITHUB_OWNER": self.GITHUB_OWNER,
            "GITHUB_REPO": self.GITHUB_REPO,
            "GITHUB_TOKEN": self.GITHUB_TOKEN,
        }
        return [name for name, value in required.items() if not value]

    def cors_origins(self) -> list[str]:
        return [origin.strip() for origin in self.CORS_ALLOWED_ORIGINS.split(",") if origin.strip()]

    def signing_configured(self) -> bool:
        return bool(self.SSL_CERT and self.SSL_KEY)

    def smtp_configured(self) -> bool:
        return bool(self.SMTP_HOST)


settings = Settings()
