"""Application configuration loaded from environment variables."""

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Runtime settings with environment variable loading and sensible defaults."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    github_api_url: str = "https://api.github.com"
    log_level: str = "INFO"
    debug: bool = False

    # PEM contents, raw or base64 encoded. Takes priority over --private-key-file.
    gh_app_private_key: str = ""

    # GitHub Actions runner environment
    github_actions: bool = False
    github_step_summary: str = ""
    github_output: str = ""


settings = Settings()
