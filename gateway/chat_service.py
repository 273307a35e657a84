"""
Chat Service Module

The request-level use cases behind the chat and RAG endpoints.

Responsibilities:
- Record session activity (message count = history length + 1)
- Apply the history window and build the conversation prompt
- Resolve default model / embedding types
- Plain chat: create a provider, generate, close it
- RAG: hand the conversation prompt to the RAG chain as its query

Usage:
    service = ChatService(factory, rag_chain, sessions)
    result = service.chat("What is ESG?", session_id="abc", history=history)
    print(result.response)
"""

import logging
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Union

from gateway.constants import EmbeddingType, ModelType, parse_embedding_type, parse_model_type
from gateway.llm_service import ProviderFactory
from gateway.memory import ConversationHistory, HistoryWindow, SessionStore
from gateway.prompts import build_conversation_prompt
from gateway.rag_chain import RAGChain
from gateway.vector_store import Document

logger = logging.getLogger(__name__)


@dataclass
class ChatResult:
    """Outcome of a plain chat request."""
    response: str
    model: ModelType
    session_id: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "response": self.response,
            "model": self.model.value,
            "sessionId": self.session_id,
        }


@dataclass
class RAGResult:
    """Outcome of a RAG request.

    ``model`` is the model that answered, or the requested model name when
    no documents were found and no model was called.
    """
    response: str
    model: str
    embedding_model: EmbeddingType
    documents: List[Document]
    session_id: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "response": self.response,
            "model": self.model,
            "embedding_model": self.embedding_model.value,
            "sessionId": self.session_id,
        }


class ChatService:
    """
    Chat and RAG use cases with session tracking.

    Thread-safe: the only shared mutable state is the SessionStore.
    """

    def __init__(
        self,
        factory: ProviderFactory,
        rag_chain: RAGChain,
        sessions: SessionStore,
        history_window: Optional[HistoryWindow] = None,
        default_model: Union[str, ModelType, None] = None,
        default_embedding: Union[str, EmbeddingType, None] = None,
    ):
        """
        Initialize the chat service.

        Args:
            factory: Provider factory for plain chat
            rag_chain: RAG chain for retrieval-augmented answers
            sessions: Session registry updated on every request with a session id
            history_window: Truncation policy for conversation history
            default_model: Model type used when a request names none
            default_embedding: Embedding type used when a request names none
        """
        self.factory = factory
        self.rag_chain = rag_chain
        self.sessions = sessions
        self.history_window = history_window or HistoryWindow()
        self.default_model = parse_model_type(default_model)
        self.default_embedding = parse_embedding_type(default_embedding)

    def _track_session(self, kind: str, session_id: Optional[str], history: ConversationHistory) -> None:
        if not session_id:
            return
        logger.info(f"{kind} request for session: {session_id}, history length: {len(history)}")
        self.sessions.update_session(session_id, len(history) + 1)

    def _build_prompt(self, message: str, history: ConversationHistory) -> str:
        return build_conversation_prompt(self.history_window.apply(history), message)

    def chat(
        self,
        message: str,
        model: Union[str, ModelType, None] = None,
        session_id: Optional[str] = None,
        history: Optional[ConversationHistory] = None,
        timeout: Optional[float] = None,
    ) -> ChatResult:
        """
        Answer a message directly with the selected model.

        Args:
            message: Current user message
            model: Model type (default if unset)
            session_id: Optional client session id
            history: Prior conversation messages, oldest first
            timeout: Seconds allowed for the vendor call

        Returns:
            ChatResult with the generated response
        """
        history = history or []
        self._track_session("Chat", session_id, history)

        model_type = parse_model_type(model or self.default_model)
        prompt = self._build_prompt(message, history)

        with self.factory.create(model_type) as provider:
            response = provider.generate_content(prompt, timeout=timeout)

        return ChatResult(response=response, model=model_type, session_id=session_id)

    def rag(
        self,
        message: str,
        model: Union[str, ModelType, None] = None,
        embedding_model: Union[str, EmbeddingType, None] = None,
        session_id: Optional[str] = None,
        history: Optional[ConversationHistory] = None,
        timeout: Optional[float] = None,
    ) -> RAGResult:
        """
        Answer a message with retrieval-augmented generation.

        The conversation prompt (history plus message) is used as the
        retrieval query.

        Args:
            message: Current user message
            model: Model type (default if unset)
            embedding_model: Embedding type (default if unset)
            session_id: Optional client session id
            history: Prior conversation messages, oldest first
            timeout: Seconds allowed for each outbound call

        Returns:
            RAGResult with the answer and documents used
        """
        history = history or []
        self._track_session("RAG", session_id, history)

        if isinstance(model, ModelType):
            model = model.value
        requested_model = model or self.default_model.value
        embedding_type = parse_embedding_type(embedding_model or self.default_embedding)
        query = self._build_prompt(message, history)

        result = self.rag_chain.query(query, requested_model, embedding_type, timeout=timeout)

        return RAGResult(
            response=result.answer,
            model=result.model.value if result.model else requested_model,
            embedding_model=embedding_type,
            documents=result.documents,
            session_id=session_id,
        )
