from pydantic import Field, SecretStr
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_prefix="BEDROCK_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # AWS endpoint.  Credentials fall back to the boto3 default chain when unset.
    aws_region: str | None = Field(default=None)
    aws_endpoint_url: str | None = Field(default=None)
    aws_access_key_id: SecretStr | None = Field(default=None)
    aws_secret_access_key: SecretStr | None = Field(default=None)
    aws_session_token: SecretStr | None = Field(default=None)

    # Default models, overridable per client
    completion_model_name: str = Field(default="anthropic.claude-v2")
    embedding_model_name: str = Field(default="amazon.titan-embed-text-v1")
    chat_completion_model_name: str = Field(default="anthropic.claude-3-sonnet-20240229-v1:0")

    # Invocation behaviour
    request_timeout: int = Field(default=60)
    max_retries: int = Field(default=3)

    # Observability
    log_level: str = Field(default="INFO")
    otel_service_name: str = Field(default="bedrockbridge")
    otel_exporter_otlp_endpoint: str | None = Field(default=None)

    def client_options(self) -> dict[str, str]:
        """Explicit credential kwargs for ``boto3.client``; empty when none are set."""
        secrets = {
            "aws_access_key_id": self.aws_access_key_id,
            "aws_secret_access_key": self.aws_secret_access_key,
            "aws_session_token": self.aws_session_token,
        }
        return {key: value.get_secret_value() for key, value in secrets.items() if value is not None}


settings = Settings()
