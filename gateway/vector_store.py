"""
Vector Store Module

Provides vector database functionality for storing and searching documents.
Supports two backends:
- Milvus: Production, over the Milvus v1 REST API
- In-memory: numpy cosine similarity, for development and tests

Design Rationale:
- Abstract interface for easy backend switching
- One collection per embedding type, so a collection's dimension never changes
- DocumentService is the only entry point the API and the RAG chain use; it
  routes every call to the collection of the requested embedding type

Schema (stored per document):
- id: Primary key (Milvus auto id, or a UUID in memory)
- vector: Embedding vector
- text: Original text content
"""

import logging
import threading
import uuid
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Union

import numpy as np
import requests

from config.settings import RetrievalConfig, VectorStoreConfig
from gateway.constants import EmbeddingType, collection_name, dimension_for
from gateway.embeddings import EmbeddingService
from gateway.errors import (
    ConfigurationError,
    DocumentStoreUnavailableError,
    UpstreamError,
    clip,
)

# Configure logging
logger = logging.getLogger(__name__)


@dataclass
class Document:
    """
    A stored text and its vector.

    Attributes:
        id: Store-assigned identifier, always a string
        text: Original text content
        vector: Embedding vector (omitted from search results)
        score: Similarity score, only meaningful on search results
    """

    id: str
    text: str
    vector: List[float] = field(default_factory=list)
    score: float = 0.0

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary, dropping empty vector/score."""
        data: Dict[str, Any] = {"id": self.id, "text": self.text}
        if self.vector:
            data["vector"] = self.vector
        if self.score:
            data["score"] = self.score
        return data


def normalize_id(value: Any) -> Optional[str]:
    """Render an id of any JSON type as a string (floats as integers)."""
    if isinstance(value, bool) or value is None:
        return None
    if isinstance(value, float):
        return str(int(value))
    if isinstance(value, (int, str)):
        return str(value)
    return None


class BaseDocumentStore(ABC):
    """
    Abstract base class for document stores.

    All implementations must provide collection management plus
    insert, search, list and delete of vectors.
    """

    @abstractmethod
    def create_collection(self, name: str, dimension: int) -> None:
        """Create a collection whose vectors have the given dimension."""
        pass

    @abstractmethod
    def insert_vectors(
        self,
        collection: str,
        records: List[Dict[str, Any]],
        timeout: Optional[float] = None,
    ) -> List[str]:
        """
        Insert records into a collection.

        Args:
            collection: Target collection
            records: Dicts with "vector" and "text" keys
            timeout: Seconds before the call is abandoned

        Returns:
            Ids assigned to the inserted records, in input order
        """
        pass

    @abstractmethod
    def search(
        self,
        collection: str,
        vector: List[float],
        top_k: int,
        timeout: Optional[float] = None,
    ) -> List[Document]:
        """
        Search for similar documents.

        Args:
            collection: Collection to search
            vector: Query vector
            top_k: Number of results to return
            timeout: Seconds before the call is abandoned

        Returns:
            Documents (id, text, score) in the store's ranking order
        """
        pass

    @abstractmethod
    def list_vectors(self, collection: str, limit: int = 100) -> List[Document]:
        """Return up to ``limit`` documents of a collection."""
        pass

    @abstractmethod
    def delete_vectors(self, collection: str, ids: List[str]) -> None:
        """Delete documents by id."""
        pass

    @abstractmethod
    def delete_collection(self, name: str) -> None:
        """Drop a collection and all its documents."""
        pass

    @abstractmethod
    def list_collections(self) -> List[str]:
        """Return the names of all collections."""
        pass

    def collection_exists(self, name: str) -> bool:
        """Check whether a collection exists."""
        return name in self.list_collections()

    @abstractmethod
    def health_check(self) -> bool:
        """Return True when the store is reachable."""
        pass

    def close(self) -> None:
        """Release connections."""
        pass


class MilvusClient(BaseDocumentStore):
    """
    Milvus document store over the v1 REST API.

    Every call goes through one requests.Session. A connection failure or
    timeout raises DocumentStoreUnavailableError; an HTTP status other than
    200, or a body whose ``code`` is not 200, raises UpstreamError.
    """

    def __init__(
        self,
        config: Optional[VectorStoreConfig] = None,
        session: Optional[requests.Session] = None,
    ):
        """
        Initialize Milvus client.

        Args:
            config: Vector store configuration (host, ports, credentials)
            session: requests session (one is created if omitted)
        """
        self.config = config or VectorStoreConfig()
        self.base_url = self.config.milvus_url
        self.timeout = self.config.timeout

        self._session = session or requests.Session()
        self._session.headers.update({
            "Content-Type": "application/json",
            "Accept": "application/json",
            "Authorization": f"Bearer {self.config.milvus_username}:{self.config.milvus_password}",
        })

        logger.info(f"MilvusClient initialized: url={self.base_url}")

    def _request(
        self,
        method: str,
        path: str,
        payload: Optional[Dict[str, Any]] = None,
        action: str = "request",
        timeout: Optional[float] = None,
        check_code: bool = True,
    ) -> Dict[str, Any]:
        url = f"{self.base_url}{path}"
        try:
            response = self._session.request(
                method,
                url,
                json=payload,
                timeout=timeout or self.timeout,
            )
        except (requests.ConnectionError, requests.Timeout) as e:
            logger.error(f"Milvus {action} failed: {e}")
            raise DocumentStoreUnavailableError(f"Milvus unavailable during {action}: {clip(e)}") from e
        except requests.RequestException as e:
            logger.error(f"Milvus {action} failed: {e}")
            raise UpstreamError(f"Milvus {action} failed: {clip(e)}") from e

        if response.status_code != 200:
            raise UpstreamError(
                f"Milvus {action} failed: HTTP {response.status_code} - {clip(response.text)}"
            )

        try:
            body = response.json() if response.content else {}
        except ValueError as e:
            raise UpstreamError(f"Milvus {action} returned invalid JSON") from e

        if check_code and body.get("code", 200) != 200:
            raise UpstreamError(
                f"Milvus {action} failed: code {body.get('code')} - {clip(body.get('message', ''))}"
            )
        return body

    def create_collection(self, name: str, dimension: int) -> None:
        payload = {
            "collectionName": name,
            "dimension": dimension,
            "fields": [
                {"name": "id", "data_type": "INT64", "is_primary": True, "autoID": True},
                {"name": "vector", "data_type": "FLOAT_VECTOR", "dim": dimension},
                {"name": "text", "data_type": "VARCHAR", "max_length": 65535},
            ],
        }
        self._request("POST", "/v1/vector/collections/create", payload, action="create collection")
        logger.info(f"Created Milvus collection {name} (dim={dimension})")

    def insert_vectors(
        self,
        collection: str,
        records: List[Dict[str, Any]],
        timeout: Optional[float] = None,
    ) -> List[str]:
        if not records:
            return []

        payload = {"collectionName": collection, "data": records}
        body = self._request("POST", "/v1/vector/insert", payload, action="insert", timeout=timeout)

        data = body.get("data") or {}
        raw_ids = data.get("insertIds") if isinstance(data, dict) else None
        ids = [normalize_id(i) for i in raw_ids or []]
        ids = [i for i in ids if i is not None]
        if len(ids) != len(records):
            # Older servers omit insertIds
            ids = [str(uuid.uuid4()) for _ in records]

        logger.info(f"Inserted {len(records)} vectors into {collection}")
        return ids

    def search(
        self,
        collection: str,
        vector: List[float],
        top_k: int,
        timeout: Optional[float] = None,
    ) -> List[Document]:
        payload = {
            "collectionName": collection,
            "vector": vector,
            "outputFields": ["id", "text"],
            "limit": top_k,
        }
        body = self._request("POST", "/v1/vector/search", payload, action="search", timeout=timeout)

        documents = []
        for item in body.get("data") or []:
            doc = self._to_document(item)
            if doc is not None:
                doc.score = float(item.get("distance", item.get("score", 0.0)))
                documents.append(doc)

        logger.debug(f"Search in {collection} returned {len(documents)} documents")
        return documents

    def list_vectors(self, collection: str, limit: int = 100) -> List[Document]:
        payload = {
            "collectionName": collection,
            "outputFields": ["id", "vector", "text"],
            "filter": "id > 0",
            "limit": limit,
        }
        body = self._request("POST", "/v1/vector/query", payload, action="query")

        documents = []
        for item in body.get("data") or []:
            doc = self._to_document(item)
            if doc is not None:
                doc.vector = list(item.get("vector") or [])
                documents.append(doc)
        return documents

    def delete_vectors(self, collection: str, ids: List[str]) -> None:
        payload = {"dbName": "default", "collectionName": collection, "id": ids}
        self._request("POST", "/v1/vector/delete", payload, action="delete")
        logger.info(f"Deleted {len(ids)} vectors from {collection}")

    def delete_collection(self, name: str) -> None:
        self._request("POST", "/v1/vector/collections/drop", {"collectionName": name}, action="drop collection")
        logger.info(f"Dropped Milvus collection {name}")

    def list_collections(self) -> List[str]:
        body = self._request("GET", "/v1/vector/collections", action="list collections")
        return list(body.get("data") or [])

    def health_check(self) -> bool:
        """Check the Milvus management health endpoint."""
        try:
            response = self._session.get(self.config.milvus_health_url, timeout=self.timeout)
        except requests.RequestException as e:
            logger.debug(f"Milvus health check failed: {e}")
            return False
        return response.status_code == 200

    def close(self) -> None:
        self._session.close()

    @staticmethod
    def _to_document(item: Dict[str, Any]) -> Optional[Document]:
        doc_id = normalize_id(item.get("id"))
        text = item.get("text")
        if doc_id is None or not isinstance(text, str):
            logger.warning(f"Skipping Milvus row with unusable id/text: {clip(item, 80)}")
            return None
        return Document(id=doc_id, text=text)


class InMemoryDocumentStore(BaseDocumentStore):
    """
    numpy-based document store for local development and tests.

    Vectors are normalized on insert, so search is a dot product
    (cosine similarity). All operations share one lock.
    """

    def __init__(self):
        self._collections: Dict[str, Dict[str, Any]] = {}
        self._lock = threading.Lock()

        logger.info("InMemoryDocumentStore initialized")

    @staticmethod
    def _normalize(vectors: np.ndarray) -> np.ndarray:
        """Normalize vectors for cosine similarity."""
        norms = np.linalg.norm(vectors, axis=1, keepdims=True)
        norms[norms == 0] = 1  # Avoid division by zero
        return vectors / norms

    def _get(self, name: str) -> Dict[str, Any]:
        if name not in self._collections:
            raise UpstreamError(f"collection {name} does not exist")
        return self._collections[name]

    def create_collection(self, name: str, dimension: int) -> None:
        with self._lock:
            if name in self._collections:
                raise UpstreamError(f"collection {name} already exists")
            self._collections[name] = {"dimension": dimension, "docs": {}}

    def insert_vectors(
        self,
        collection: str,
        records: List[Dict[str, Any]],
        timeout: Optional[float] = None,
    ) -> List[str]:
        with self._lock:
            coll = self._get(collection)
            for record in records:
                if len(record["vector"]) != coll["dimension"]:
                    raise ConfigurationError(
                        f"vector dimension {len(record['vector'])} does not match "
                        f"collection {collection} ({coll['dimension']})"
                    )

            ids = []
            for record in records:
                doc_id = str(uuid.uuid4())
                coll["docs"][doc_id] = Document(
                    id=doc_id,
                    text=record["text"],
                    vector=list(record["vector"]),
                )
                ids.append(doc_id)
            return ids

    def search(
        self,
        collection: str,
        vector: List[float],
        top_k: int,
        timeout: Optional[float] = None,
    ) -> List[Document]:
        with self._lock:
            docs = list(self._get(collection)["docs"].values())

        if not docs or top_k <= 0:
            return []

        matrix = self._normalize(np.array([d.vector for d in docs], dtype=np.float32))
        query = self._normalize(np.array([vector], dtype=np.float32))
        scores = matrix @ query[0]

        order = np.argsort(-scores)[:top_k]
        return [
            Document(id=docs[i].id, text=docs[i].text, score=float(scores[i]))
            for i in order
        ]

    def list_vectors(self, collection: str, limit: int = 100) -> List[Document]:
        with self._lock:
            docs = list(self._get(collection)["docs"].values())
        return [Document(id=d.id, text=d.text, vector=list(d.vector)) for d in docs[:limit]]

    def delete_vectors(self, collection: str, ids: List[str]) -> None:
        with self._lock:
            docs = self._get(collection)["docs"]
            for doc_id in ids:
                docs.pop(doc_id, None)

    def delete_collection(self, name: str) -> None:
        with self._lock:
            self._get(name)
            del self._collections[name]

    def list_collections(self) -> List[str]:
        with self._lock:
            return list(self._collections)

    def health_check(self) -> bool:
        return True


def create_document_store(config: Optional[VectorStoreConfig] = None) -> BaseDocumentStore:
    """Build the configured document store backend."""
    config = config or VectorStoreConfig()
    if config.provider == "milvus":
        return MilvusClient(config)
    elif config.provider == "memory":
        return InMemoryDocumentStore()
    raise ConfigurationError(f"Unknown vector store provider: {config.provider}")


class DocumentService:
    """
    Document operations routed per embedding type.

    This is the class that other components should use. Every write and
    search first makes sure the routed collection exists with the
    dimension of its embedding type.

    Example:
        service = DocumentService(store, embeddings)
        doc_id = service.insert_document("Scope 1 emissions ...", "openai-3-small")
        docs = service.search_similar_documents("What are scope 1 emissions?", 3, "openai-3-small")
    """

    def __init__(
        self,
        store: BaseDocumentStore,
        embeddings: EmbeddingService,
        config: Optional[VectorStoreConfig] = None,
        retrieval: Optional[RetrievalConfig] = None,
    ):
        """
        Initialize the document service.

        Args:
            store: Document store backend
            embeddings: EmbeddingService for query/document vectors
            config: Vector store configuration (base collection name)
            retrieval: Retrieval configuration (default top_k)
        """
        self.store = store
        self.embeddings = embeddings
        self.config = config or VectorStoreConfig()
        self.retrieval = retrieval or RetrievalConfig()

    def collection_for(self, embedding_type: Union[str, EmbeddingType, None]) -> str:
        """Physical collection name of an embedding type."""
        return collection_name(self.embeddings.resolve(embedding_type), self.config.base_collection)

    def ensure_collection(self, embedding_type: Union[str, EmbeddingType, None] = None) -> str:
        """
        Create the routed collection if it does not exist yet; return its name.

        No lock is held around store calls, so requests for different
        collections never wait on each other. When two requests race to
        create the same collection, the loser's failure is accepted once the
        collection is confirmed to exist.
        """
        resolved = self.embeddings.resolve(embedding_type)
        name = collection_name(resolved, self.config.base_collection)
        if self.store.collection_exists(name):
            return name

        logger.info(f"Creating collection {name} for {resolved.value}")
        try:
            self.store.create_collection(name, dimension_for(resolved))
        except DocumentStoreUnavailableError:
            raise
        except UpstreamError:
            if not self.store.collection_exists(name):
                raise
            logger.debug(f"Collection {name} was created by a concurrent request")
        return name

    def list_collections(self) -> List[str]:
        return self.store.list_collections()

    def create_collection(self, embedding_type: Union[str, EmbeddingType, None] = None) -> str:
        """Create the collection for an embedding type (no-op if it exists)."""
        return self.ensure_collection(embedding_type)

    def delete_collection(self, embedding_type: Union[str, EmbeddingType, None] = None) -> str:
        name = self.collection_for(embedding_type)
        self.store.delete_collection(name)
        return name

    def insert_document(
        self,
        text: str,
        embedding_type: Union[str, EmbeddingType, None] = None,
    ) -> str:
        """
        Embed and insert a single document.

        Returns:
            The id assigned by the store
        """
        vector = self.embeddings.embed_text(text, embedding_type)
        name = self.ensure_collection(embedding_type)
        ids = self.store.insert_vectors(name, [{"vector": vector, "text": text}])
        return ids[0]

    def insert_documents(
        self,
        texts: List[str],
        embedding_type: Union[str, EmbeddingType, None] = None,
    ) -> List[str]:
        """Embed and insert many documents in one store call."""
        if not texts:
            return []

        vectors = self.embeddings.embed_batch(texts, embedding_type)
        name = self.ensure_collection(embedding_type)
        records = [{"vector": v, "text": t} for v, t in zip(vectors, texts)]
        return self.store.insert_vectors(name, records)

    def list_documents(
        self,
        embedding_type: Union[str, EmbeddingType, None] = None,
        limit: int = 100,
    ) -> List[Document]:
        name = self.collection_for(embedding_type)
        if not self.store.collection_exists(name):
            return []
        return self.store.list_vectors(name, limit)

    def delete_document(self, doc_id: str, embedding_type: Union[str, EmbeddingType, None] = None) -> None:
        self.delete_documents([doc_id], embedding_type)

    def delete_documents(
        self,
        ids: List[str],
        embedding_type: Union[str, EmbeddingType, None] = None,
    ) -> None:
        if not ids:
            return
        self.store.delete_vectors(self.collection_for(embedding_type), ids)

    def search_similar_documents(
        self,
        query: str,
        top_k: Optional[int] = None,
        embedding_type: Union[str, EmbeddingType, None] = None,
        timeout: Optional[float] = None,
    ) -> List[Document]:
        """
        Search for documents relevant to a query.

        Args:
            query: User's question/search query
            top_k: Number of results (default from config)
            embedding_type: Which embedding model and collection to use
            timeout: Seconds before the store call is abandoned

        Returns:
            Documents in the store's ranking order
        """
        top_k = top_k or self.retrieval.top_k
        vector = self.embeddings.embed_query(query, embedding_type)
        name = self.ensure_collection(embedding_type)
        return self.store.search(name, vector, top_k, timeout=timeout)
