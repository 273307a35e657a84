"""
Tests for environment-driven settings.
"""

from config.settings import Settings


class TestSettingsFromEnv:
    """Tests for Settings.from_env."""

    def test_defaults(self, monkeypatch):
        """Test defaults when nothing is set."""
        for name in ("DEFAULT_LLM_MODEL", "DEFAULT_EMBEDDING_TYPE", "TOP_K_RESULTS", "CORS_ORIGINS", "PORT"):
            monkeypatch.delenv(name, raising=False)

        settings = Settings.from_env()

        assert settings.llm.default_model == "openai"
        assert settings.embedding.default_type == "openai-ada-002"
        assert settings.retrieval.top_k == 3
        assert settings.server.port == 8080
        assert settings.server.cors_origins == ["http://localhost:3333"]

    def test_overrides(self, monkeypatch):
        """Test that environment variables override defaults."""
        monkeypatch.setenv("OPENAI_API_KEY", "sk-env")
        monkeypatch.setenv("WATSONX_PROJECT_ID", "proj")
        monkeypatch.setenv("WATSONX_CACHE_TOKEN", "false")
        monkeypatch.setenv("VECTOR_STORE_PROVIDER", "memory")
        monkeypatch.setenv("MILVUS_HOST", "milvus")
        monkeypatch.setenv("TOP_K_RESULTS", "5")
        monkeypatch.setenv("HISTORY_MAX_MESSAGES", "10")
        monkeypatch.setenv("CORS_ORIGINS", "http://a.test, http://b.test")

        settings = Settings.from_env()

        assert settings.llm.openai_api_key == "sk-env"
        assert settings.llm.watsonx_project_id == "proj"
        assert settings.llm.watsonx_cache_token is False
        assert settings.vector_store.provider == "memory"
        assert settings.vector_store.milvus_url == "http://milvus:19530"
        assert settings.vector_store.milvus_health_url == "http://milvus:9091/api/v1/health"
        assert settings.retrieval.top_k == 5
        assert settings.session.history_max_messages == 10
        assert settings.server.cors_origins == ["http://a.test", "http://b.test"]
