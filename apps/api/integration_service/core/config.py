from functools import lru_cache
from pathlib import Path

from pydantic_settings import BaseSettings, SettingsConfigDict

# Load .env from apps/api so it works regardless of CWD
_env_file = Path(__file__).resolve().parent.parent.parent / ".env"


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=_env_file, extra="ignore")

    service_name: str = "integration-service"
    environment: str = "development"

    # Ledger DB (idempotency keys, webhook deliveries)
    database_url: str = "postgresql://localhost/integration_service"
    sql_echo: bool = False

    # Gitea (version-control host)
    gitea_url: str = "http://gitea:3000"
    gitea_token: str | None = None
    gitea_repo_owner: str = "gitea_admin"
    gitea_repo_name: str = "cdm-data"
    gitea_default_branch: str = "main"
    gitea_timeout_seconds: float = 30.0
    gitea_webhook_secret: str = "change-me-in-production"

    # Search index; "memory" keeps everything in-process (local dev, tests)
    index_backend: str = "opensearch"
    opensearch_url: str = "http://opensearch:9200"
    opensearch_username: str | None = None
    opensearch_password: str | None = None
    opensearch_verify_tls: bool = False
    opensearch_timeout: float = 30.0
    opensearch_index_contacts: str = "contacts"
    opensearch_index_reference: str = "reference-data"
    opensearch_index_notifications: str = "notifications"
    index_bootstrap_attempts: int = 5
    index_bootstrap_delay_seconds: float = 5.0

    # Moqui (downstream party system)
    moqui_url: str = "http://host.docker.internal:8080"
    moqui_api_path: str = "/rest/s1/mantle/party"
    moqui_username: str = "admin"
    moqui_password: str = "admin"
    moqui_timeout_seconds: float = 30.0

    # Notification channels (comma-separated webhook URLs)
    notification_webhooks: str = ""
    notification_webhook_timeout_seconds: float = 10.0
    notification_email: str | None = None
    sendgrid_api_key: str | None = None
    sendgrid_from_email: str | None = None
    sendgrid_from_name: str | None = None

    # Automation merge path only
    merge_retry_attempts: int = 5
    merge_retry_delay_seconds: float = 2.0

    # Rate limiting
    rate_limit_enabled: bool = True
    submission_rate_limit: str = "30/minute"

    # CORS (comma-separated origins; * allows all)
    cors_origins: str = "*"

    log_level: str = "INFO"
    log_json: bool = True
    bootstrap_on_startup: bool = True

    @property
    def cors_origins_list(self) -> list[str]:
        """Parsed CORS origins for middleware."""
        raw = self.cors_origins.strip()
        return ["*"] if not raw else [o.strip() for o in raw.split(",") if o.strip()]

    @property
    def notification_webhook_list(self) -> list[str]:
        return [u.strip() for u in self.notification_webhooks.split(",") if u.strip()]


@lru_cache
def get_settings() -> Settings:
    return Settings()
