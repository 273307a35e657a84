"""
Shared fixtures: a deterministic fake provider and factory, so no test
touches a vendor API.
"""

from typing import List, Optional
from unittest.mock import Mock

import pytest

from config.settings import LLMConfig, Settings, VectorStoreConfig
from gateway.constants import EmbeddingType, dimension_for
from gateway.embeddings import EmbeddingService
from gateway.llm_service import BaseLLMProvider, ProviderFactory
from gateway.vector_store import DocumentService, InMemoryDocumentStore


def fake_vector(text: str, dimension: int) -> List[float]:
    """Character-count vector: texts sharing characters score higher."""
    vector = [0.0] * dimension
    for ch in text.lower():
        vector[ord(ch) % dimension] += 1.0
    return vector


class FakeProvider(BaseLLMProvider):
    """Records prompts and returns a fixed answer."""

    def __init__(self, answer: str = "fake answer", dimension: int = 1536):
        self.answer = answer
        self.dimension = dimension
        self.prompts: List[str] = []
        self.closed = False

    def generate_content(self, prompt: str, timeout: Optional[float] = None) -> str:
        self.prompts.append(prompt)
        return self.answer

    def create_embedding(self, text: str) -> List[float]:
        return fake_vector(text, self.dimension)

    def create_batch_embeddings(self, texts: List[str]) -> List[List[float]]:
        return [self.create_embedding(t) for t in texts]

    def create_embedding_with(self, embedding_type: EmbeddingType, text: str) -> List[float]:
        return fake_vector(text, dimension_for(embedding_type))

    def create_batch_embeddings_with(self, embedding_type: EmbeddingType, texts: List[str]) -> List[List[float]]:
        return [self.create_embedding_with(embedding_type, t) for t in texts]

    def close(self) -> None:
        self.closed = True

    @property
    def model_name(self) -> str:
        return "fake-model"


@pytest.fixture
def provider_class():
    return FakeProvider


@pytest.fixture
def fake_provider():
    return FakeProvider()


@pytest.fixture
def fake_factory(fake_provider):
    """ProviderFactory stand-in whose every create_* returns ``fake_provider``."""
    factory = Mock(spec=ProviderFactory)
    factory.create.return_value = fake_provider
    factory.create_openai.return_value = fake_provider
    factory.create_gemini.return_value = FakeProvider(dimension=768)
    factory.available_models.return_value = ["openai", "gemini"]
    return factory


@pytest.fixture
def llm_config():
    return LLMConfig(
        openai_api_key="sk-test",
        gemini_api_key="gm-test",
        watsonx_api_key="wx-test",
        watsonx_project_id="project-1",
    )


@pytest.fixture
def memory_store():
    return InMemoryDocumentStore()


@pytest.fixture
def embedding_service(fake_factory):
    return EmbeddingService(factory=fake_factory)


@pytest.fixture
def document_service(memory_store, embedding_service):
    return DocumentService(memory_store, embedding_service)


@pytest.fixture
def settings():
    return Settings(vector_store=VectorStoreConfig(provider="memory"))
