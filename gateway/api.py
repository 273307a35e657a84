"""
FastAPI application factory.

create_app() is the composition root: it builds every service from the
settings, wires the routes, and ties the background monitors to the
application lifespan. Handlers are plain ``def`` functions, so FastAPI
runs each request in its thread pool.

Routes (all JSON):
    POST   /api/chat                     chat with a model
    POST   /api/rag                      retrieval-augmented chat
    GET    /api/sessions                 list sessions
    GET    /api/sessions/{session_id}    one session
    DELETE /api/sessions/{session_id}    forget a session
    GET    /api/collections              list collections
    POST   /api/collections/create       create the collection of an embedding type
    DELETE /api/collections              drop the collection of an embedding type
    GET    /api/documents                list documents
    POST   /api/documents/insert         embed and insert one document
    POST   /api/documents/insert/batch   embed and insert many documents
    POST   /api/documents/delete         delete one document
    POST   /api/documents/delete/batch   delete many documents
    POST   /api/documents/search         similarity search
    GET    /api/embedding-models         embedding types with dimension/collection
    GET    /api/models                   model types and which are configured
    GET    /health                       liveness
"""

import logging
from contextlib import asynccontextmanager
from datetime import timedelta
from typing import List, Optional

from fastapi import APIRouter, FastAPI, Query, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from config.settings import Settings, get_settings
from gateway.chat_service import ChatService
from gateway.constants import EmbeddingType, ModelType, collection_name, dimension_for
from gateway.embeddings import EmbeddingService
from gateway.errors import GatewayError, NotFoundError, clip
from gateway.llm_service import ProviderFactory
from gateway.memory import HistoryWindow, SessionStore
from gateway.monitoring import HealthMonitor, SessionJanitor
from gateway.rag_chain import RAGChain
from gateway.schemas import (
    ChatRequest,
    ChatResponse,
    CollectionListResponse,
    CollectionRequest,
    DeleteDocumentRequest,
    DeleteDocumentsRequest,
    DocumentResponse,
    EmbeddingModelInfo,
    HealthResponse,
    InsertDocumentRequest,
    InsertDocumentsRequest,
    InsertResponse,
    MessageResponse,
    ModelListResponse,
    RAGRequest,
    RAGResponse,
    SearchRequest,
    SessionListResponse,
    SessionResponse,
)
from gateway.vector_store import BaseDocumentStore, DocumentService, create_document_store

logger = logging.getLogger(__name__)


def create_app(
    settings: Optional[Settings] = None,
    document_store: Optional[BaseDocumentStore] = None,
    factory: Optional[ProviderFactory] = None,
) -> FastAPI:
    """
    Build the gateway application.

    Args:
        settings: Application settings (loaded from the environment if omitted)
        document_store: Document store backend (built from settings if omitted)
        factory: Provider factory (built from settings if omitted)

    Returns:
        Configured FastAPI app; services are exposed on ``app.state``
    """
    settings = settings or get_settings()

    factory = factory or ProviderFactory(settings.llm, settings.embedding)
    embeddings = EmbeddingService(settings.embedding, settings.llm, factory=factory)
    store = document_store or create_document_store(settings.vector_store)
    documents = DocumentService(store, embeddings, settings.vector_store, settings.retrieval)
    rag_chain = RAGChain(
        documents,
        factory,
        settings.retrieval,
        default_model=settings.llm.default_model,
        default_embedding=settings.embedding.default_type,
    )
    sessions = SessionStore()
    chat_service = ChatService(
        factory,
        rag_chain,
        sessions,
        history_window=HistoryWindow(
            max_messages=settings.session.history_max_messages,
            max_tokens=settings.session.history_max_tokens,
        ),
        default_model=settings.llm.default_model,
        default_embedding=settings.embedding.default_type,
    )

    health_monitor = HealthMonitor(store, interval=settings.vector_store.health_check_interval)
    janitor = SessionJanitor(
        sessions,
        max_age=timedelta(hours=settings.session.max_age_hours),
        interval=settings.session.cleanup_interval,
    )

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        logger.info("Starting LLM gateway")
        health_monitor.start()
        janitor.start()
        try:
            yield
        finally:
            janitor.stop()
            health_monitor.stop()
            store.close()
            logger.info("LLM gateway stopped")

    app = FastAPI(title="LLM Gateway", lifespan=lifespan)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.server.cors_origins,
        allow_methods=["GET", "POST", "PUT", "DELETE", "OPTIONS"],
        allow_headers=["Origin", "Content-Type", "Authorization"],
        expose_headers=["Content-Length"],
        allow_credentials=True,
    )

    app.state.settings = settings
    app.state.factory = factory
    app.state.documents = documents
    app.state.rag_chain = rag_chain
    app.state.sessions = sessions
    app.state.chat_service = chat_service
    app.state.health_monitor = health_monitor
    app.state.janitor = janitor

    @app.exception_handler(GatewayError)
    async def gateway_error_handler(request: Request, exc: GatewayError):
        if exc.status_code >= 500:
            logger.error(f"{request.method} {request.url.path} failed: {exc.message}")
        return JSONResponse(status_code=exc.status_code, content=exc.to_dict())

    @app.exception_handler(RequestValidationError)
    async def validation_error_handler(request: Request, exc: RequestValidationError):
        errors = exc.errors()
        detail = errors[0].get("msg", "") if errors else ""
        return JSONResponse(
            status_code=400,
            content={"error": clip(f"invalid request format: {detail}")},
        )

    router = APIRouter(prefix="/api")

    # --- Chat ---

    @router.post("/chat", response_model=ChatResponse)
    def chat(body: ChatRequest):
        result = chat_service.chat(
            body.message,
            model=body.model,
            session_id=body.session_id,
            history=body.history(),
            timeout=settings.llm.request_timeout,
        )
        return ChatResponse(**result.to_dict())

    @router.post("/rag", response_model=RAGResponse)
    def rag(body: RAGRequest):
        result = chat_service.rag(
            body.message,
            model=body.model,
            embedding_model=body.embedding_model,
            session_id=body.session_id,
            history=body.history(),
            timeout=settings.llm.request_timeout,
        )
        return RAGResponse(**result.to_dict())

    # --- Sessions ---

    @router.get("/sessions", response_model=SessionListResponse)
    def list_sessions():
        items = [SessionResponse.from_session(s) for s in sessions.get_all_sessions()]
        return SessionListResponse(sessions=items, count=len(items))

    @router.get("/sessions/{session_id}", response_model=SessionResponse)
    def get_session(session_id: str):
        session = sessions.get_session(session_id)
        if session is None:
            raise NotFoundError("Session not found")
        return SessionResponse.from_session(session)

    @router.delete("/sessions/{session_id}", response_model=MessageResponse)
    def delete_session(session_id: str):
        if not sessions.delete_session(session_id):
            raise NotFoundError("Session not found")
        return MessageResponse(message="Session deleted")

    # --- Collections ---

    @router.get("/collections", response_model=CollectionListResponse)
    def list_collections():
        return CollectionListResponse(collections=documents.list_collections())

    @router.post("/collections/create", response_model=MessageResponse)
    def create_collection(body: Optional[CollectionRequest] = None):
        name = documents.create_collection(body.embedding_model if body else None)
        return MessageResponse(message=f"Collection {name} is ready")

    @router.delete("/collections", response_model=MessageResponse)
    def delete_collection(embedding_model: Optional[str] = Query(default=None)):
        name = documents.delete_collection(embedding_model)
        return MessageResponse(message=f"Collection {name} deleted")

    # --- Documents ---

    @router.get("/documents", response_model=List[DocumentResponse], response_model_exclude_none=True)
    def list_documents(
        embedding_model: Optional[str] = Query(default=None),
        limit: int = Query(default=100, gt=0, le=16384),
    ):
        docs = documents.list_documents(embedding_model, limit=limit)
        return [DocumentResponse.from_document(d, include_vector=True) for d in docs]

    @router.post("/documents/insert", response_model=InsertResponse)
    def insert_document(body: InsertDocumentRequest):
        doc_id = documents.insert_document(body.text, body.embedding_model)
        return InsertResponse(message="Document inserted", ids=[doc_id])

    @router.post("/documents/insert/batch", response_model=InsertResponse)
    def insert_documents(body: InsertDocumentsRequest):
        ids = documents.insert_documents(body.texts, body.embedding_model)
        return InsertResponse(message=f"{len(ids)} documents inserted", ids=ids)

    @router.post("/documents/delete", response_model=MessageResponse)
    def delete_document(body: DeleteDocumentRequest):
        documents.delete_document(body.id, body.embedding_model)
        return MessageResponse(message="Document deleted")

    @router.post("/documents/delete/batch", response_model=MessageResponse)
    def delete_documents(body: DeleteDocumentsRequest):
        documents.delete_documents(body.ids, body.embedding_model)
        return MessageResponse(message=f"{len(body.ids)} documents deleted")

    @router.post("/documents/search", response_model=List[DocumentResponse], response_model_exclude_none=True)
    def search_documents(body: SearchRequest):
        docs = documents.search_similar_documents(
            body.query,
            top_k=body.top_k,
            embedding_type=body.embedding_model,
            timeout=settings.vector_store.timeout,
        )
        return [DocumentResponse.from_document(d) for d in docs]

    # --- Models ---

    @router.get("/embedding-models", response_model=List[EmbeddingModelInfo])
    def list_embedding_models():
        base = settings.vector_store.base_collection
        return [
            EmbeddingModelInfo(
                name=t.value,
                dimension=dimension_for(t),
                collection=collection_name(t, base),
            )
            for t in EmbeddingType
        ]

    @router.get("/models", response_model=ModelListResponse)
    def list_models():
        return ModelListResponse(
            models=[m.value for m in ModelType],
            available=factory.available_models(),
            default=rag_chain.default_model.value,
        )

    app.include_router(router)

    @app.get("/health", response_model=HealthResponse)
    def health():
        if health_monitor.running:
            store_ok = health_monitor.healthy
        else:
            store_ok = store.health_check()
        return HealthResponse(
            status="ok" if store_ok else "degraded",
            document_store=store_ok,
            sessions=sessions.session_count(),
        )

    logger.info(f"Gateway app created (document store: {type(store).__name__})")
    return app
