"""
Request/response models for the HTTP API.

Field aliases keep the established JSON names (sessionId,
conversationHistory, messageCount); Python code uses snake_case.
"""

from datetime import datetime
from typing import List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field

from gateway.memory import ConversationMessage, MessageRole, SessionInfo
from gateway.vector_store import Document


class _Schema(BaseModel):
    model_config = ConfigDict(populate_by_name=True)


class HistoryMessage(_Schema):
    role: Literal["user", "assistant"]
    content: str
    timestamp: Optional[datetime] = None

    def to_message(self) -> ConversationMessage:
        if self.timestamp is None:
            return ConversationMessage(role=MessageRole(self.role), content=self.content)
        return ConversationMessage(
            role=MessageRole(self.role),
            content=self.content,
            timestamp=self.timestamp,
        )


class ChatRequest(_Schema):
    message: str = Field(min_length=1)
    model: Optional[str] = None
    session_id: Optional[str] = Field(default=None, alias="sessionId")
    conversation_history: List[HistoryMessage] = Field(default_factory=list, alias="conversationHistory")

    def history(self) -> List[ConversationMessage]:
        return [m.to_message() for m in self.conversation_history]


class RAGRequest(ChatRequest):
    embedding_model: Optional[str] = None


class ChatResponse(_Schema):
    response: str
    model: str
    session_id: Optional[str] = Field(default=None, alias="sessionId")


class RAGResponse(ChatResponse):
    embedding_model: str


class SessionResponse(_Schema):
    session_id: str = Field(alias="sessionId")
    message_count: int = Field(alias="messageCount")
    created_at: datetime = Field(alias="createdAt")
    last_activity: datetime = Field(alias="lastActivity")

    @classmethod
    def from_session(cls, session: SessionInfo) -> "SessionResponse":
        return cls(**session.to_dict())


class SessionListResponse(_Schema):
    sessions: List[SessionResponse]
    count: int


class MessageResponse(_Schema):
    message: str


class CollectionRequest(_Schema):
    embedding_model: Optional[str] = None


class CollectionListResponse(_Schema):
    collections: List[str]


class InsertDocumentRequest(_Schema):
    text: str = Field(min_length=1)
    embedding_model: Optional[str] = None


class InsertDocumentsRequest(_Schema):
    texts: List[str] = Field(min_length=1)
    embedding_model: Optional[str] = None


class InsertResponse(_Schema):
    message: str
    ids: List[str]


class DeleteDocumentRequest(_Schema):
    id: str = Field(min_length=1)
    embedding_model: Optional[str] = None


class DeleteDocumentsRequest(_Schema):
    ids: List[str] = Field(min_length=1)
    embedding_model: Optional[str] = None


class SearchRequest(_Schema):
    query: str = Field(min_length=1)
    top_k: Optional[int] = Field(default=None, alias="topK", gt=0)
    embedding_model: Optional[str] = None


class DocumentResponse(_Schema):
    id: str
    text: str
    vector: Optional[List[float]] = None
    score: Optional[float] = None

    @classmethod
    def from_document(cls, doc: Document, include_vector: bool = False) -> "DocumentResponse":
        data = doc.to_dict()
        if not include_vector:
            data.pop("vector", None)
        return cls(**data)


class EmbeddingModelInfo(_Schema):
    name: str
    dimension: int
    collection: str


class ModelListResponse(_Schema):
    models: List[str]
    available: List[str]
    default: str


class HealthResponse(_Schema):
    status: Literal["ok", "degraded"]
    document_store: bool
    sessions: int
