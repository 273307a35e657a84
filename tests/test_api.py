"""
Tests for the HTTP API.

The app is built with the in-memory document store and a fake provider
factory; the lifespan (background monitors) is not started.
"""

import pytest
from fastapi.testclient import TestClient

from gateway.api import create_app
from gateway.errors import ConfigurationError, DocumentStoreUnavailableError, UpstreamError


@pytest.fixture
def app(settings, memory_store, fake_factory):
    return create_app(settings, document_store=memory_store, factory=fake_factory)


@pytest.fixture
def client(app):
    return TestClient(app)


HISTORY = [
    {"role": "user", "content": "What is ESG?"},
    {"role": "assistant", "content": "Environmental, social and governance."},
]


class TestChatEndpoints:
    """Tests for /api/chat and /api/rag."""

    def test_chat_then_session_lookup(self, client):
        """Test that a chat with two history messages records messageCount 3."""
        response = client.post("/api/chat", json={
            "message": "And scope 3?",
            "model": "openai",
            "sessionId": "abc",
            "conversationHistory": HISTORY,
        })

        assert response.status_code == 200
        assert response.json() == {"response": "fake answer", "model": "openai", "sessionId": "abc"}

        session = client.get("/api/sessions/abc")
        assert session.status_code == 200
        assert session.json()["sessionId"] == "abc"
        assert session.json()["messageCount"] == 3

    def test_chat_defaults_model(self, client):
        """Test that an omitted model resolves to openai."""
        response = client.post("/api/chat", json={"message": "hello"})
        assert response.json()["model"] == "openai"

    def test_unknown_model_is_400(self, client):
        """Test that an unsupported model returns an error envelope."""
        response = client.post("/api/chat", json={"message": "hello", "model": "llama"})

        assert response.status_code == 400
        assert "llama" in response.json()["error"]

    def test_missing_message_is_400(self, client):
        """Test that a malformed body is rejected as an invalid request."""
        response = client.post("/api/chat", json={"model": "openai"})

        assert response.status_code == 400
        assert response.json()["error"].startswith("invalid request format")

    def test_invalid_role_is_400(self, client):
        """Test that only user/assistant roles are accepted."""
        response = client.post("/api/chat", json={
            "message": "hi",
            "conversationHistory": [{"role": "system", "content": "x"}],
        })
        assert response.status_code == 400

    def test_upstream_error_is_502(self, client, fake_provider, monkeypatch):
        """Test that vendor failures map to 502."""
        def fail(prompt, timeout=None):
            raise UpstreamError("OpenAI API error: boom")

        monkeypatch.setattr(fake_provider, "generate_content", fail)

        response = client.post("/api/chat", json={"message": "hello"})

        assert response.status_code == 502
        assert response.json() == {"error": "OpenAI API error: boom"}

    def test_rag_with_documents(self, client):
        """Test a RAG request against inserted documents."""
        client.post("/api/documents/insert/batch", json={
            "texts": ["scope 1 emissions", "scope 2 emissions"],
            "embedding_model": "openai-3-small",
        })

        response = client.post("/api/rag", json={
            "message": "emissions",
            "embedding_model": "openai-3-small",
            "sessionId": "r1",
        })

        assert response.status_code == 200
        body = response.json()
        assert body["response"] == "fake answer"
        assert body["embedding_model"] == "openai-3-small"
        assert body["sessionId"] == "r1"

    def test_rag_without_documents(self, client, fake_factory):
        """Test that RAG over an empty collection returns the fallback answer."""
        client.post("/api/collections/create", json={})

        response = client.post("/api/rag", json={"message": "anything"})

        assert response.status_code == 200
        assert response.json()["response"].startswith("No relevant documents")
        fake_factory.create.assert_not_called()

    def test_rag_search_failure_is_502(self, client, memory_store, monkeypatch):
        """Test that an unreachable store surfaces as a search failure."""
        def unavailable(*args, **kwargs):
            raise DocumentStoreUnavailableError("milvus unreachable")

        monkeypatch.setattr(memory_store, "search", unavailable)

        response = client.post("/api/rag", json={"message": "anything"})

        assert response.status_code == 502
        assert response.json()["error"].startswith("search failed")

    def test_rag_unknown_model_without_documents_returns_fallback(self, client):
        """Test that an unknown model does not matter when nothing is retrieved."""
        response = client.post("/api/rag", json={"message": "hi", "model": "llama"})

        assert response.status_code == 200
        assert response.json()["response"].startswith("No relevant documents")
        assert response.json()["model"] == "llama"

    def test_rag_unknown_model_with_documents_is_provider_creation_failure(self, client):
        """Test that an unknown model fails the provider creation stage."""
        client.post("/api/documents/insert", json={"text": "scope 1 emissions"})

        response = client.post("/api/rag", json={"message": "emissions", "model": "llama"})

        assert response.status_code == 400
        assert response.json()["error"].startswith("provider creation failed")

    def test_rag_missing_embedding_key_is_400(self, client, fake_factory):
        """Test that a missing embedding key is reported as a configuration error."""
        fake_factory.create_openai.side_effect = ConfigurationError("OpenAI API key not configured")

        response = client.post("/api/rag", json={"message": "anything"})

        assert response.status_code == 400
        assert response.json() == {"error": "OpenAI API key not configured"}


class TestSessionEndpoints:
    """Tests for /api/sessions."""

    def test_missing_session_is_404(self, client):
        """Test lookup of an unknown session."""
        response = client.get("/api/sessions/nope")

        assert response.status_code == 404
        assert response.json() == {"error": "Session not found"}

    def test_list_and_delete(self, client):
        """Test listing then deleting sessions."""
        client.post("/api/chat", json={"message": "hi", "sessionId": "a"})
        client.post("/api/chat", json={"message": "hi", "sessionId": "b"})

        listing = client.get("/api/sessions").json()
        assert listing["count"] == 2
        assert sorted(s["sessionId"] for s in listing["sessions"]) == ["a", "b"]

        assert client.delete("/api/sessions/a").status_code == 200
        assert client.delete("/api/sessions/a").status_code == 404
        assert client.get("/api/sessions").json()["count"] == 1


class TestDocumentEndpoints:
    """Tests for collection and document management."""

    def test_insert_list_search_delete(self, client):
        """Test the document lifecycle on the default collection."""
        inserted = client.post("/api/documents/insert", json={"text": "carbon emissions"})
        assert inserted.status_code == 200
        doc_id = inserted.json()["ids"][0]

        client.post("/api/documents/insert/batch", json={"texts": ["water usage", "board diversity"]})

        listed = client.get("/api/documents").json()
        assert len(listed) == 3
        assert all(len(d["vector"]) == 1536 for d in listed)

        results = client.post("/api/documents/search", json={"query": "carbon emission", "topK": 2}).json()
        assert len(results) == 2
        assert results[0]["text"] == "carbon emissions"
        assert "vector" not in results[0]

        deleted = client.post("/api/documents/delete", json={"id": doc_id})
        assert deleted.status_code == 200
        assert len(client.get("/api/documents").json()) == 2

    def test_batch_delete(self, client):
        """Test deleting several documents at once."""
        ids = client.post("/api/documents/insert/batch", json={"texts": ["a", "b", "c"]}).json()["ids"]

        response = client.post("/api/documents/delete/batch", json={"ids": ids[:2]})

        assert response.status_code == 200
        assert [d["text"] for d in client.get("/api/documents").json()] == ["c"]

    def test_collections_routed_by_embedding_type(self, client):
        """Test that each embedding type gets its own collection."""
        client.post("/api/collections/create", json={"embedding_model": "gemini-embedding"})
        client.post("/api/documents/insert", json={"text": "x", "embedding_model": "openai-3-large"})

        collections = client.get("/api/collections").json()["collections"]
        assert sorted(collections) == ["documents_gemini", "documents_openai3large"]

        response = client.delete("/api/collections", params={"embedding_model": "gemini-embedding"})
        assert response.status_code == 200
        assert client.get("/api/collections").json()["collections"] == ["documents_openai3large"]

    def test_gemini_documents_are_768(self, client):
        """Test that Gemini-embedded documents have 768-dimension vectors."""
        client.post("/api/documents/insert", json={"text": "x", "embedding_model": "gemini-embedding"})

        listed = client.get("/api/documents", params={"embedding_model": "gemini-embedding"}).json()
        assert len(listed[0]["vector"]) == 768

    def test_empty_text_is_400(self, client):
        """Test that empty documents are rejected."""
        assert client.post("/api/documents/insert", json={"text": ""}).status_code == 400

    def test_unknown_embedding_is_400(self, client):
        """Test that an unknown embedding type is a client error."""
        response = client.post("/api/documents/insert", json={"text": "x", "embedding_model": "word2vec"})
        assert response.status_code == 400


class TestInfoEndpoints:
    """Tests for model listings and health."""

    def test_embedding_models(self, client):
        """Test the embedding model catalogue."""
        models = {m["name"]: m for m in client.get("/api/embedding-models").json()}

        assert models["openai-ada-002"] == {"name": "openai-ada-002", "dimension": 1536, "collection": "documents"}
        assert models["gemini-embedding"]["dimension"] == 768
        assert models["openai-3-small"]["collection"] == "documents_openai3small"
        assert models["openai-3-large"]["dimension"] == 1536

    def test_models(self, client):
        """Test the model listing."""
        body = client.get("/api/models").json()

        assert sorted(body["models"]) == ["gemini", "openai", "watsonx"]
        assert body["available"] == ["openai", "gemini"]
        assert body["default"] == "openai"

    def test_health(self, client):
        """Test the liveness endpoint."""
        client.post("/api/chat", json={"message": "hi", "sessionId": "a"})

        assert client.get("/health").json() == {"status": "ok", "document_store": True, "sessions": 1}

    def test_lifespan_starts_and_stops_monitors(self, app):
        """Test that the background workers follow the application lifespan."""
        with TestClient(app):
            assert app.state.health_monitor.running
            assert app.state.janitor.running
        assert not app.state.health_monitor.running
        assert not app.state.janitor.running
