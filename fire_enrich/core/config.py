"""
Configuration management for fire-enrich.

Provides centralized, validated configuration from environment variables
with proper type checking and defaults.
"""

from __future__ import annotations

from typing import Dict, List, Optional

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


def _parse_bool(v) -> bool:
    if isinstance(v, str):
        return v.strip().lower() in ("1", "true", "yes", "y")
    return bool(v)


class ApolloConfig(BaseSettings):
    """Apollo.io API configuration."""

    api_key: Optional[str] = Field(default=None, alias="APOLLO_API_KEY")
    base_url: str = Field(default="https://api.apollo.io", alias="APOLLO_BASE_URL")

    model_config = SettingsConfigDict(env_prefix="", extra="ignore")


class SnovConfig(BaseSettings):
    """Snov.io OAuth and polling configuration."""

    client_id: Optional[str] = Field(default=None, alias="SNOV_CLIENT_ID")
    client_secret: Optional[str] = Field(default=None, alias="SNOV_CLIENT_SECRET")
    base_url: str = Field(default="https://api.snov.io", alias="SNOV_BASE_URL")
    poll_attempts: int = Field(default=5, alias="SNOV_POLL_ATTEMPTS")
    poll_interval: float = Field(default=0.6, alias="SNOV_POLL_INTERVAL")

    model_config = SettingsConfigDict(env_prefix="", extra="ignore")


class ExploriumConfig(BaseSettings):
    """Explorium business-graph API configuration."""

    api_key: Optional[str] = Field(default=None, alias="EXPLORIUM_API_KEY")
    base_url: str = Field(default="https://api.explorium.ai", alias="EXPLORIUM_BASE_URL")

    model_config = SettingsConfigDict(env_prefix="", extra="ignore")


class ApifyConfig(BaseSettings):
    """Apify LinkedIn post scraper configuration."""

    token: Optional[str] = Field(default=None, alias="APIFY_TOKEN")
    base_url: str = Field(default="https://api.apify.com", alias="APIFY_BASE_URL")
    actor: str = Field(default="supreme_coder~linkedin-post", alias="APIFY_ACTOR")
    posts_limit: int = Field(default=5, alias="APIFY_POSTS_LIMIT")

    model_config = SettingsConfigDict(env_prefix="", extra="ignore")


class ResearchConfig(BaseSettings):
    """Web research (Azure OpenAI / OpenAI) configuration."""

    api_key: Optional[str] = Field(default=None, alias="AZURE_OPENAI_API_KEY")
    openai_api_key: Optional[str] = Field(default=None, alias="OPENAI_API_KEY")
    azure_endpoint: Optional[str] = Field(default=None, alias="AZURE_OPENAI_ENDPOINT")
    azure_deployment: Optional[str] = Field(default=None, alias="AZURE_OPENAI_DEPLOYMENT")
    azure_api_version: str = Field(default="2024-10-21", alias="AZURE_OPENAI_API_VERSION")
    model: str = Field(default="gpt-4.1", alias="RESEARCH_MODEL")
    temperature: Optional[float] = Field(default=0.2, alias="RESEARCH_TEMPERATURE")

    model_config = SettingsConfigDict(env_prefix="", extra="ignore")

    @property
    def uses_azure(self) -> bool:
        return bool(self.api_key and self.azure_endpoint)

    @property
    def enabled(self) -> bool:
        return self.uses_azure or bool(self.openai_api_key)


class EnrichmentConfig(BaseSettings):
    """Session scheduling and pipeline configuration."""

    concurrent_rows: int = Field(default=10, alias="CONCURRENT_ROWS", ge=1)
    row_timeout_seconds: float = Field(default=180.0, alias="ROW_TIMEOUT_SECONDS")
    provider_timeout_seconds: float = Field(default=30.0, alias="PROVIDER_TIMEOUT_SECONDS")
    enable_email_verification: bool = Field(default=True, alias="ENABLE_EMAIL_VERIFICATION")
    enable_social_posts: bool = Field(default=True, alias="ENABLE_SOCIAL_POSTS")
    skip_list_path: Optional[str] = Field(default=None, alias="SKIP_LIST_PATH")
    max_fields: int = Field(default=10, alias="MAX_FIELDS")

    @field_validator("enable_email_verification", "enable_social_posts", mode="before")
    @classmethod
    def parse_flags(cls, v):
        return _parse_bool(v)

    model_config = SettingsConfigDict(env_prefix="", extra="ignore")


class Settings(BaseSettings):
    """Main application settings."""

    # Environment
    environment: str = Field(default="production", alias="ENVIRONMENT")
    debug: bool = Field(default=False, alias="DEBUG")

    # Service runtime
    service_host: str = Field(default="127.0.0.1", alias="SERVICE_HOST")
    service_port: int = Field(default=8080, alias="SERVICE_PORT")

    # Component configurations
    apollo: ApolloConfig = Field(default_factory=ApolloConfig)
    snov: SnovConfig = Field(default_factory=SnovConfig)
    explorium: ExploriumConfig = Field(default_factory=ExploriumConfig)
    apify: ApifyConfig = Field(default_factory=ApifyConfig)
    research: ResearchConfig = Field(default_factory=ResearchConfig)
    enrichment: EnrichmentConfig = Field(default_factory=EnrichmentConfig)

    @field_validator("debug", mode="before")
    @classmethod
    def parse_debug(cls, v):
        return _parse_bool(v)

    model_config = SettingsConfigDict(
        env_prefix="",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )


# Global settings instance
settings: Optional[Settings] = None


def get_settings() -> Settings:
    """Get the global settings instance."""
    global settings
    if settings is None:
        settings = Settings()
    return settings


def provider_status(config: Settings) -> Dict[str, str]:
    """Report which providers have credentials configured."""
    return {
        "apollo": "configured" if config.apollo.api_key else "missing",
        "snov": (
            "configured" if config.snov.client_id and config.snov.client_secret else "missing"
        ),
        "explorium": "configured" if config.explorium.api_key else "missing",
        "apify": "configured" if config.apify.token else "missing",
        "web_research": "configured" if config.research.enabled else "missing",
    }


def validate_required_settings(for_workflow: str = "enrich") -> List[str]:
    """
    Validate that required settings are present for specific workflows.

    Args:
        for_workflow: Workflow name ("enrich", "serve", or "minimal")

    Returns:
        List of missing required settings
    """
    missing = []
    try:
        config = get_settings()

        if for_workflow in ("enrich", "serve"):
            # At least one firmographic source or web research must be reachable
            status = provider_status(config)
            if not any(v == "configured" for k, v in status.items() if k != "apify"):
                missing.append(
                    "APOLLO_API_KEY | SNOV_CLIENT_ID+SNOV_CLIENT_SECRET | "
                    "EXPLORIUM_API_KEY | AZURE_OPENAI_API_KEY"
                )
            if config.research.api_key and not config.research.azure_endpoint:
                missing.append("AZURE_OPENAI_ENDPOINT")

        elif for_workflow == "minimal":
            pass

    except Exception as e:
        missing.append(f"Configuration error: {e}")

    return missing


def print_configuration_summary():
    """Print a summary of the current configuration for debugging."""
    try:
        config = get_settings()
        print("=== fire-enrich Configuration Summary ===")
        print(f"Environment: {config.environment}")
        print(f"Debug Mode: {config.debug}")
        print(f"Concurrent Rows: {config.enrichment.concurrent_rows}")
        print(f"Row Timeout: {config.enrichment.row_timeout_seconds}s")
        print(f"Provider Timeout: {config.enrichment.provider_timeout_seconds}s")
        print(f"Skip List: {config.enrichment.skip_list_path or 'built-in webmail list'}")
        print()
        for name, state in provider_status(config).items():
            print(f"{name:<13} {'✓' if state == 'configured' else '✗'}")
        print()
        print(f"Email Verification: {'✓' if config.enrichment.enable_email_verification else '✗'}")
        print(f"Social Posts: {'✓' if config.enrichment.enable_social_posts else '✗'}")
        print("=" * 41)
    except Exception as e:
        print(f"Error loading configuration: {e}")
