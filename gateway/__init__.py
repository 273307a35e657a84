"""
LLM Gateway - Core Source Module

This module contains the gateway components:
- ProviderFactory / BaseLLMProvider: LLM provider abstraction (OpenAI/Gemini/Watsonx)
- EmbeddingService: Embedding routing per embedding type
- DocumentService: Document store interface (Milvus/in-memory)
- SessionStore / HistoryWindow: Session tracking and history truncation
- RAGChain: Orchestrates retrieval + generation
- ChatService: Chat and RAG request handling
- create_app: FastAPI application factory
"""

from .constants import EmbeddingType, ModelType
from .errors import GatewayError
from .llm_service import BaseLLMProvider, ProviderFactory
from .embeddings import EmbeddingService
from .vector_store import Document, DocumentService, InMemoryDocumentStore, MilvusClient
from .memory import ConversationMessage, HistoryWindow, MessageRole, SessionStore
from .prompts import build_conversation_prompt, build_rag_prompt
from .rag_chain import RAGChain, RAGResponse
from .chat_service import ChatService
from .api import create_app

__all__ = [
    # Identifiers and errors
    "EmbeddingType",
    "ModelType",
    "GatewayError",
    # Providers
    "BaseLLMProvider",
    "ProviderFactory",
    "EmbeddingService",
    # Documents
    "Document",
    "DocumentService",
    "InMemoryDocumentStore",
    "MilvusClient",
    # Conversation
    "ConversationMessage",
    "HistoryWindow",
    "MessageRole",
    "SessionStore",
    "build_conversation_prompt",
    "build_rag_prompt",
    # Orchestration
    "RAGChain",
    "RAGResponse",
    "ChatService",
    "create_app",
]
