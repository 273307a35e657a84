"""
Tests for RAG Chain Module

Tests the retrieval/generation pipeline with a mocked document service
and factory.
"""

import re

import pytest
from unittest.mock import Mock

from gateway.constants import EmbeddingType, ModelType
from gateway.errors import (
    ConfigurationError,
    GenerationFailedError,
    ProviderCreationError,
    SearchFailedError,
    UnsupportedProviderError,
    UpstreamError,
)
from gateway.rag_chain import NO_DOCUMENTS_ANSWER, RAGChain
from gateway.vector_store import Document, DocumentService


@pytest.fixture
def documents():
    service = Mock(spec=DocumentService)
    service.search_similar_documents.return_value = [
        Document(id="1", text="Scope 1 covers direct emissions.", score=0.92),
        Document(id="2", text="Scope 2 covers purchased energy.", score=0.81),
        Document(id="3", text="Scope 3 covers the value chain.", score=0.64),
    ]
    return service


@pytest.fixture
def rag_chain(documents, fake_factory):
    return RAGChain(documents=documents, factory=fake_factory)


class TestRAGChain:
    """Tests for the RAG pipeline."""

    def test_defaults(self, rag_chain):
        """Test default top_k, model and embedding type."""
        assert rag_chain.top_k == 3
        assert rag_chain.default_model == ModelType.OPENAI
        assert rag_chain.default_embedding == EmbeddingType.OPENAI_ADA_002

    def test_three_documents_in_search_order(self, rag_chain, documents, fake_provider):
        """Test prompt holds exactly the retrieved documents, in order, then the query."""
        answer = rag_chain.generate_response(
            "What do the scopes cover?",
            model_type="openai",
            embedding_type="openai-3-small",
        )

        assert answer == "fake answer"
        documents.search_similar_documents.assert_called_once_with(
            "What do the scopes cover?",
            top_k=3,
            embedding_type=EmbeddingType.OPENAI_3_SMALL,
            timeout=None,
        )

        prompt = fake_provider.prompts[0]
        sections = re.findall(r"Document (\d+): (.*)\n", prompt)
        assert sections == [
            ("1", "Scope 1 covers direct emissions."),
            ("2", "Scope 2 covers purchased energy."),
            ("3", "Scope 3 covers the value chain."),
        ]
        assert prompt.index("Document 3:") < prompt.index("What do the scopes cover?")

    @pytest.mark.parametrize("model_type", [None, "openai", "gemini", "watsonx"])
    @pytest.mark.parametrize("embedding_type", [None, "openai-ada-002", "gemini-embedding"])
    def test_no_documents_never_calls_provider(self, rag_chain, documents, fake_factory, model_type, embedding_type):
        """Test that zero search results return the fallback without generation."""
        documents.search_similar_documents.return_value = []

        answer = rag_chain.generate_response("anything", model_type, embedding_type)

        assert answer == NO_DOCUMENTS_ANSWER
        fake_factory.create.assert_not_called()

    def test_defaults_resolved_when_unset(self, rag_chain, documents, fake_factory):
        """Test that unset types resolve to openai / openai-ada-002."""
        result = rag_chain.query("question")

        assert result.model == ModelType.OPENAI
        assert result.embedding_model == EmbeddingType.OPENAI_ADA_002
        fake_factory.create.assert_called_once_with(ModelType.OPENAI)
        assert documents.search_similar_documents.call_args.kwargs["embedding_type"] == EmbeddingType.OPENAI_ADA_002

    def test_provider_closed_after_success(self, rag_chain, fake_provider):
        """Test that the provider is closed after generation."""
        rag_chain.generate_response("question")
        assert fake_provider.closed

    def test_search_failure_is_wrapped(self, rag_chain, documents, fake_factory):
        """Test that search errors become SearchFailedError with the cause kept."""
        cause = UpstreamError("milvus down")
        documents.search_similar_documents.side_effect = cause

        with pytest.raises(SearchFailedError) as exc_info:
            rag_chain.generate_response("question")

        assert exc_info.value.__cause__ is cause
        assert exc_info.value.stage == "search"
        assert exc_info.value.message.startswith("search failed")
        fake_factory.create.assert_not_called()

    def test_provider_creation_failure_is_wrapped(self, rag_chain, fake_factory):
        """Test that factory errors become ProviderCreationError."""
        cause = ConfigurationError("OpenAI API key not configured")
        fake_factory.create.side_effect = cause

        with pytest.raises(ProviderCreationError) as exc_info:
            rag_chain.generate_response("question")

        assert exc_info.value.__cause__ is cause
        assert exc_info.value.stage == "provider creation"

    def test_generation_failure_is_wrapped_and_provider_closed(self, rag_chain, fake_factory):
        """Test that generation errors are wrapped and the provider still closed."""
        provider = Mock()
        cause = UpstreamError("vendor 500")
        provider.generate_content.side_effect = cause
        fake_factory.create.return_value = provider

        with pytest.raises(GenerationFailedError) as exc_info:
            rag_chain.generate_response("question")

        assert exc_info.value.__cause__ is cause
        assert exc_info.value.stage == "generation"
        provider.close.assert_called_once()

    def test_unknown_model_type_is_provider_creation_failure(self, rag_chain, fake_factory):
        """Test that an unknown model type fails the provider creation stage."""
        with pytest.raises(ProviderCreationError) as exc_info:
            rag_chain.generate_response("question", model_type="llama")

        assert isinstance(exc_info.value.__cause__, UnsupportedProviderError)
        assert exc_info.value.message.startswith("provider creation failed")
        assert exc_info.value.status_code == 400
        fake_factory.create.assert_not_called()

    def test_unknown_model_type_without_documents_returns_fallback(self, rag_chain, documents):
        """Test that the model type is only resolved once documents were found."""
        documents.search_similar_documents.return_value = []

        result = rag_chain.query("question", model_type="llama")

        assert result.answer == NO_DOCUMENTS_ANSWER
        assert result.model is None

    def test_configuration_error_during_search_is_not_wrapped(self, rag_chain, documents):
        """Test that a missing embedding key stays a configuration error."""
        cause = ConfigurationError("OpenAI API key not configured")
        documents.search_similar_documents.side_effect = cause

        with pytest.raises(ConfigurationError) as exc_info:
            rag_chain.generate_response("question")

        assert exc_info.value is cause
        assert not isinstance(exc_info.value, SearchFailedError)

    def test_top_k_override(self, rag_chain, documents):
        """Test that top_k can be overridden per query."""
        rag_chain.query("question", top_k=5)
        assert documents.search_similar_documents.call_args.kwargs["top_k"] == 5
