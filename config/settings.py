"""
Configuration settings for the LLM Gateway.

This module handles all configuration management using environment variables.
No hardcoded credentials - everything is configurable via .env file.

The gateway core never reads the environment itself: components receive
one of the config sections below from the composition root.
"""

import os
from dataclasses import dataclass, field
from typing import List, Literal, Optional
from dotenv import load_dotenv

# Load environment variables from .env file
load_dotenv()


@dataclass
class LLMConfig:
    """Configuration for LLM providers."""

    default_model: str = "openai"
    request_timeout: float = 60.0

    # OpenAI settings
    openai_api_key: Optional[str] = None
    openai_model: str = "gpt-4o"

    # Gemini settings
    gemini_api_key: Optional[str] = None
    gemini_model: str = "gemini-2.0-flash"

    # Watsonx settings
    watsonx_api_key: Optional[str] = None
    watsonx_project_id: Optional[str] = None
    watsonx_model: str = "meta-llama/llama-3-3-70b-instruct"
    watsonx_url: str = "https://jp-tok.ml.cloud.ibm.com/ml/v1/text/chat?version=2023-05-29"
    watsonx_iam_url: str = "https://iam.cloud.ibm.com/identity/token"
    watsonx_cache_token: bool = True


@dataclass
class EmbeddingConfig:
    """Configuration for embedding models."""

    default_type: str = "openai-ada-002"
    gemini_model: str = "text-embedding-004"
    # OpenAI accepts up to 2048 inputs per request; stay well below
    openai_batch_size: int = 100


@dataclass
class VectorStoreConfig:
    """Configuration for the document (vector) store."""

    provider: Literal["milvus", "memory"] = "milvus"
    base_collection: str = "documents"

    # Milvus settings
    milvus_host: str = "localhost"
    milvus_port: str = "19530"
    milvus_rest_port: str = "9091"
    milvus_username: str = "root"
    milvus_password: str = "milvus"
    timeout: float = 10.0
    health_check_interval: float = 10.0

    @property
    def milvus_url(self) -> str:
        """Base URL of the Milvus REST API."""
        return f"http://{self.milvus_host}:{self.milvus_port}"

    @property
    def milvus_health_url(self) -> str:
        """Health endpoint served on the Milvus management port."""
        return f"http://{self.milvus_host}:{self.milvus_rest_port}/api/v1/health"


@dataclass
class RetrievalConfig:
    """Configuration for retrieval settings."""

    top_k: int = 3  # Number of documents to retrieve


@dataclass
class SessionConfig:
    """Configuration for session tracking and history windowing."""

    max_age_hours: float = 24.0
    cleanup_interval: float = 300.0  # seconds between janitor sweeps

    # 0 disables the limit
    history_max_messages: int = 0
    history_max_tokens: int = 0


@dataclass
class ServerConfig:
    """Configuration for the HTTP server."""

    host: str = "0.0.0.0"
    port: int = 8080
    cors_origins: List[str] = field(default_factory=lambda: ["http://localhost:3333"])


@dataclass
class Settings:
    """
    Main settings class that aggregates all configurations.

    Usage:
        settings = get_settings()
        print(settings.llm.default_model)
        print(settings.vector_store.milvus_url)
    """

    llm: LLMConfig = field(default_factory=LLMConfig)
    embedding: EmbeddingConfig = field(default_factory=EmbeddingConfig)
    vector_store: VectorStoreConfig = field(default_factory=VectorStoreConfig)
    retrieval: RetrievalConfig = field(default_factory=RetrievalConfig)
    session: SessionConfig = field(default_factory=SessionConfig)
    server: ServerConfig = field(default_factory=ServerConfig)

    # Logging
    log_level: str = "INFO"

    @classmethod
    def from_env(cls) -> "Settings":
        """
        Create Settings instance from environment variables.

        This is the primary way to instantiate Settings.
        """
        llm = LLMConfig(
            default_model=os.getenv("DEFAULT_LLM_MODEL", "openai"),
            request_timeout=float(os.getenv("LLM_REQUEST_TIMEOUT", "60")),
            openai_api_key=os.getenv("OPENAI_API_KEY"),
            openai_model=os.getenv("OPENAI_LLM_MODEL", "gpt-4o"),
            gemini_api_key=os.getenv("GEMINI_API_KEY"),
            gemini_model=os.getenv("GEMINI_MODEL", "gemini-2.0-flash"),
            watsonx_api_key=os.getenv("WATSONX_API_KEY"),
            watsonx_project_id=os.getenv("WATSONX_PROJECT_ID"),
            watsonx_model=os.getenv("WATSONX_MODEL", "meta-llama/llama-3-3-70b-instruct"),
            watsonx_url=os.getenv(
                "WATSONX_URL",
                "https://jp-tok.ml.cloud.ibm.com/ml/v1/text/chat?version=2023-05-29",
            ),
            watsonx_iam_url=os.getenv("WATSONX_IAM_URL", "https://iam.cloud.ibm.com/identity/token"),
            watsonx_cache_token=_env_bool("WATSONX_CACHE_TOKEN", True),
        )

        embedding = EmbeddingConfig(
            default_type=os.getenv("DEFAULT_EMBEDDING_TYPE", "openai-ada-002"),
            gemini_model=os.getenv("GEMINI_EMBEDDING_MODEL", "text-embedding-004"),
            openai_batch_size=int(os.getenv("OPENAI_EMBEDDING_BATCH_SIZE", "100")),
        )

        vector_store = VectorStoreConfig(
            provider=os.getenv("VECTOR_STORE_PROVIDER", "milvus"),  # type: ignore
            base_collection=os.getenv("VECTOR_COLLECTION", "documents"),
            milvus_host=os.getenv("MILVUS_HOST", "localhost"),
            milvus_port=os.getenv("MILVUS_PORT", "19530"),
            milvus_rest_port=os.getenv("MILVUS_REST_PORT", "9091"),
            milvus_username=os.getenv("MILVUS_USERNAME", "root"),
            milvus_password=os.getenv("MILVUS_PASSWORD", "milvus"),
            timeout=float(os.getenv("MILVUS_TIMEOUT", "10")),
            health_check_interval=float(os.getenv("MILVUS_HEALTH_INTERVAL", "10")),
        )

        retrieval = RetrievalConfig(
            top_k=int(os.getenv("TOP_K_RESULTS", "3")),
        )

        session = SessionConfig(
            max_age_hours=float(os.getenv("SESSION_MAX_AGE_HOURS", "24")),
            cleanup_interval=float(os.getenv("SESSION_CLEANUP_INTERVAL", "300")),
            history_max_messages=int(os.getenv("HISTORY_MAX_MESSAGES", "0")),
            history_max_tokens=int(os.getenv("HISTORY_MAX_TOKENS", "0")),
        )

        origins = os.getenv("CORS_ORIGINS", "http://localhost:3333")
        server = ServerConfig(
            host=os.getenv("HOST", "0.0.0.0"),
            port=int(os.getenv("PORT", "8080")),
            cors_origins=[o.strip() for o in origins.split(",") if o.strip()],
        )

        return cls(
            llm=llm,
            embedding=embedding,
            vector_store=vector_store,
            retrieval=retrieval,
            session=session,
            server=server,
            log_level=os.getenv("LOG_LEVEL", "INFO"),
        )


def _env_bool(name: str, default: bool) -> bool:
    value = os.getenv(name)
    if value is None:
        return default
    return value.strip().lower() in ("1", "true", "yes", "on")


# Singleton pattern for settings
_settings: Optional[Settings] = None


def get_settings() -> Settings:
    """
    Get the singleton Settings instance.

    Returns:
        Settings: The application settings loaded from environment.
    """
    global _settings
    if _settings is None:
        _settings = Settings.from_env()
    return _settings


def reload_settings() -> Settings:
    """
    Reload settings from environment (useful for testing).

    Returns:
        Settings: Fresh settings instance.
    """
    global _settings
    load_dotenv(override=True)
    _settings = Settings.from_env()
    return _settings
