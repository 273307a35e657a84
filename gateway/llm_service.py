"""
LLM Service Module

Provides an abstraction layer for Large Language Model providers:
- Cloud: OpenAI (GPT-4o) - chat completions and embeddings
- Cloud: Google Gemini - content generation and embeddings
- Cloud: IBM Watsonx - chat over REST, authorised by an IAM token exchange

Design Rationale:
- Every vendor sits behind the same four capabilities (generate content,
  embed one text, embed a batch, close), so callers never branch on vendor
- ProviderFactory is a table from ModelType to constructor; it is the only
  place that knows which API key belongs to which vendor
- API keys arrive through LLMConfig; nothing here reads the environment
- Failures propagate: no retries, vendor errors are wrapped in UpstreamError

Usage:
    factory = ProviderFactory(settings.llm)
    with factory.create("openai") as provider:
        answer = provider.generate_content("What is machine learning?")
"""

import logging
import threading
import time
from abc import ABC, abstractmethod
from typing import Callable, Dict, List, Optional, Union

import httpx
import openai
import requests
from openai import OpenAI
from google import genai
from google.genai import errors as genai_errors
from google.genai import types

from config.settings import EmbeddingConfig, LLMConfig
from gateway.constants import (
    EmbeddingType,
    GEMINI_DIMENSION,
    ModelType,
    OPENAI_DIMENSION,
    OPENAI_EMBEDDING_MODELS,
    parse_model_type,
)
from gateway.errors import (
    ConfigurationError,
    NoValidResponseError,
    UnsupportedEmbeddingError,
    UpstreamError,
    clip,
)

# Configure logging
logger = logging.getLogger(__name__)

SYSTEM_INSTRUCTION = (
    "You are an assistant specialised in ESG (environmental, social and governance) "
    "metrics. Provide accurate and useful answers to the user's questions."
)


class BaseLLMProvider(ABC):
    """
    Abstract base class for LLM providers.

    All providers must implement:
    - generate_content: Generate text from a prompt
    - create_embedding: Embed one text (None when the vendor cannot embed)
    - create_batch_embeddings: Embed many texts (None when unsupported)
    - close: Release vendor client resources
    """

    @abstractmethod
    def generate_content(self, prompt: str, timeout: Optional[float] = None) -> str:
        """
        Generate a response from the LLM.

        The provider's fixed system instruction is sent ahead of the prompt.

        Args:
            prompt: Fully assembled user prompt
            timeout: Seconds before the outbound call is abandoned

        Returns:
            Generated text

        Raises:
            NoValidResponseError: Vendor returned no choices/candidates
            UpstreamError: Transport, auth or vendor-side failure
        """
        pass

    @abstractmethod
    def create_embedding(self, text: str) -> Optional[List[float]]:
        """Embed a single text, or return None if the vendor cannot embed."""
        pass

    @abstractmethod
    def create_batch_embeddings(self, texts: List[str]) -> Optional[List[List[float]]]:
        """Embed many texts in input order, or return None if unsupported."""
        pass

    def close(self) -> None:
        """Release any vendor client resources."""
        pass

    @property
    @abstractmethod
    def model_name(self) -> str:
        """Return the model name."""
        pass

    def __enter__(self) -> "BaseLLMProvider":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()


def _require_key(api_key: Optional[str], vendor: str, env_name: str) -> str:
    if not api_key:
        raise ConfigurationError(
            f"{vendor} API key not configured. Set {env_name} environment variable."
        )
    return api_key


class OpenAIProvider(BaseLLMProvider):
    """
    OpenAI provider for GPT models and embeddings.

    Embedding models:
    - text-embedding-ada-002: 1536 dims (default)
    - text-embedding-3-small: 1536 dims
    - text-embedding-3-large: requested at 1536 dims
    """

    def __init__(
        self,
        api_key: Optional[str],
        model: str = "gpt-4o",
        timeout: Optional[float] = None,
        batch_size: int = 100,
    ):
        """
        Initialize OpenAI provider.

        Args:
            api_key: OpenAI API key
            model: Chat model name
            timeout: Default request timeout in seconds
            batch_size: Max inputs per embeddings request
        """
        self._api_key = _require_key(api_key, "OpenAI", "OPENAI_API_KEY")
        self._model = model
        self._timeout = timeout
        self._batch_size = batch_size
        self._client: Optional[OpenAI] = None

        logger.debug(f"Initializing OpenAIProvider: model={model}")

    def _get_client(self) -> OpenAI:
        """Get or create OpenAI client."""
        if self._client is None:
            self._client = OpenAI(api_key=self._api_key)
        return self._client

    def generate_content(self, prompt: str, timeout: Optional[float] = None) -> str:
        """Generate response using OpenAI chat completions."""
        client = self._get_client()

        messages = [
            {"role": "system", "content": SYSTEM_INSTRUCTION},
            {"role": "user", "content": prompt},
        ]

        try:
            response = client.chat.completions.create(
                model=self._model,
                messages=messages,
                timeout=timeout or self._timeout,
            )
        except openai.OpenAIError as e:
            logger.error(f"OpenAI generation error: {e}")
            raise UpstreamError(f"OpenAI generation failed: {clip(e)}") from e

        if not response.choices:
            raise NoValidResponseError()

        return response.choices[0].message.content or ""

    def create_embedding(self, text: str) -> List[float]:
        return self.create_embedding_with(EmbeddingType.OPENAI_ADA_002, text)

    def create_batch_embeddings(self, texts: List[str]) -> List[List[float]]:
        return self.create_batch_embeddings_with(EmbeddingType.OPENAI_ADA_002, texts)

    def create_embedding_with(self, embedding_type: EmbeddingType, text: str) -> List[float]:
        """
        Generate embedding for a single text with a specific OpenAI model.

        Args:
            embedding_type: One of the OpenAI embedding types
            text: Input text to embed

        Returns:
            Embedding vector
        """
        embeddings = self.create_batch_embeddings_with(embedding_type, [text])
        if not embeddings:
            raise UpstreamError("OpenAI returned no embedding")
        return embeddings[0]

    def create_batch_embeddings_with(
        self,
        embedding_type: EmbeddingType,
        texts: List[str],
    ) -> List[List[float]]:
        """
        Generate embeddings for multiple texts using OpenAI API.

        Inputs are sent in groups of ``batch_size``; output order matches input.

        Args:
            embedding_type: One of the OpenAI embedding types
            texts: List of input texts

        Returns:
            List of embedding vectors
        """
        if embedding_type not in OPENAI_EMBEDDING_MODELS:
            raise UnsupportedEmbeddingError(
                f"Embedding type {embedding_type.value} is not an OpenAI model"
            )
        if not texts:
            return []

        client = self._get_client()
        model = OPENAI_EMBEDDING_MODELS[embedding_type]

        kwargs = {"model": model}
        # v3 models can shorten their output; ada-002 rejects the parameter
        if embedding_type != EmbeddingType.OPENAI_ADA_002:
            kwargs["dimensions"] = OPENAI_DIMENSION

        logger.debug(f"Embedding batch of {len(texts)} texts via OpenAI ({model})")

        all_embeddings = []
        for i in range(0, len(texts), self._batch_size):
            batch = texts[i:i + self._batch_size]
            try:
                response = client.embeddings.create(input=batch, timeout=self._timeout, **kwargs)
            except openai.OpenAIError as e:
                logger.error(f"OpenAI embedding error: {e}")
                raise UpstreamError(f"OpenAI embedding failed: {clip(e)}") from e

            # Sort by index to maintain order
            sorted_data = sorted(response.data, key=lambda x: x.index)
            all_embeddings.extend(item.embedding for item in sorted_data)

        return all_embeddings

    def close(self) -> None:
        if self._client is not None:
            self._client.close()
            self._client = None

    @property
    def model_name(self) -> str:
        return self._model


class GeminiProvider(BaseLLMProvider):
    """
    Google Gemini provider using the google-genai package.

    Models:
    - gemini-2.0-flash: generation (default)
    - text-embedding-004: embeddings, 768 dims
    """

    def __init__(
        self,
        api_key: Optional[str],
        model: str = "gemini-2.0-flash",
        embedding_model: str = "text-embedding-004",
        timeout: Optional[float] = None,
    ):
        """
        Initialize Gemini provider.

        Args:
            api_key: Gemini API key
            model: Generation model name
            embedding_model: Embedding model name
            timeout: Default request timeout in seconds
        """
        self._api_key = _require_key(api_key, "Gemini", "GEMINI_API_KEY")
        self._model = model
        self._embedding_model = embedding_model
        self._timeout = timeout
        self._client: Optional[genai.Client] = None

        logger.debug(f"Initializing GeminiProvider: model={model}")

    def _get_client(self) -> genai.Client:
        """Get or create the Gemini client."""
        if self._client is None:
            self._client = genai.Client(api_key=self._api_key)
        return self._client

    def _http_options(self, timeout: Optional[float]) -> Optional[types.HttpOptions]:
        timeout = timeout or self._timeout
        if not timeout:
            return None
        # google-genai expects milliseconds
        return types.HttpOptions(timeout=int(timeout * 1000))

    def generate_content(self, prompt: str, timeout: Optional[float] = None) -> str:
        """Generate response using Gemini."""
        client = self._get_client()

        config = types.GenerateContentConfig(
            system_instruction=SYSTEM_INSTRUCTION,
            http_options=self._http_options(timeout),
        )

        try:
            response = client.models.generate_content(
                model=self._model,
                contents=prompt,
                config=config,
            )
        except (genai_errors.APIError, httpx.HTTPError) as e:
            logger.error(f"Gemini generation error: {e}")
            raise UpstreamError(f"Gemini generation failed: {clip(e)}") from e

        candidates = response.candidates or []
        if not candidates or candidates[0].content is None or not candidates[0].content.parts:
            raise NoValidResponseError()

        return response.text or ""

    def create_embedding(self, text: str) -> List[float]:
        """Generate a 768-dimension embedding for one text."""
        client = self._get_client()

        try:
            result = client.models.embed_content(
                model=self._embedding_model,
                contents=text,
                config=types.EmbedContentConfig(
                    output_dimensionality=GEMINI_DIMENSION,
                    http_options=self._http_options(None),
                ),
            )
        except (genai_errors.APIError, httpx.HTTPError) as e:
            logger.error(f"Gemini embedding error: {e}")
            raise UpstreamError(f"Gemini embedding failed: {clip(e)}") from e

        if not result.embeddings or not result.embeddings[0].values:
            raise UpstreamError("Gemini returned no embedding")

        return list(result.embeddings[0].values)

    def create_batch_embeddings(self, texts: List[str]) -> List[List[float]]:
        """Embed texts one request at a time, failing on the first error."""
        embeddings = []
        for i, text in enumerate(texts, 1):
            try:
                embeddings.append(self.create_embedding(text))
            except UpstreamError as e:
                raise UpstreamError(f"Gemini batch embedding failed at item {i}: {e.message}") from e
        return embeddings

    def close(self) -> None:
        if self._client is not None:
            close = getattr(self._client, "close", None)
            if close is not None:
                close()
            self._client = None

    @property
    def model_name(self) -> str:
        return self._model


class WatsonxTokenManager:
    """
    Exchanges a Watsonx API key for an IAM bearer token.

    With caching enabled the token is reused until ``refresh_margin`` seconds
    before its reported expiration; with caching disabled every call performs
    a fresh exchange. Thread-safe: one manager may be shared by every
    WatsonxProvider the factory builds.
    """

    GRANT_TYPE = "urn:ibm:params:oauth:grant-type:apikey"

    def __init__(
        self,
        api_key: str,
        iam_url: str = "https://iam.cloud.ibm.com/identity/token",
        cache: bool = True,
        refresh_margin: float = 60.0,
        timeout: Optional[float] = None,
        clock: Callable[[], float] = time.time,
    ):
        self._api_key = api_key
        self._iam_url = iam_url
        self.cache = cache
        self._refresh_margin = refresh_margin
        self._timeout = timeout
        self._clock = clock

        self._token: Optional[str] = None
        self._expires_at = 0.0
        self._lock = threading.Lock()

    def get_token(self) -> str:
        """Return a valid bearer token, exchanging the API key if needed."""
        with self._lock:
            if self.cache and self._token and self._clock() < self._expires_at - self._refresh_margin:
                return self._token

            token, expires_at = self._fetch_token()
            if self.cache:
                self._token, self._expires_at = token, expires_at
            return token

    def invalidate(self) -> None:
        """Forget the cached token (e.g. after a 401)."""
        with self._lock:
            self._token = None
            self._expires_at = 0.0

    def _fetch_token(self):
        try:
            response = requests.post(
                self._iam_url,
                data={"apikey": self._api_key, "grant_type": self.GRANT_TYPE},
                headers={"Content-Type": "application/x-www-form-urlencoded"},
                timeout=self._timeout,
            )
        except requests.RequestException as e:
            logger.error(f"Watsonx token request failed: {e}")
            raise UpstreamError(f"Watsonx token request failed: {clip(e)}") from e

        if response.status_code != 200:
            raise UpstreamError(
                f"Watsonx token request failed: HTTP {response.status_code} - {clip(response.text)}"
            )

        try:
            payload = response.json()
            token = payload["access_token"]
        except (ValueError, KeyError) as e:
            raise UpstreamError("Watsonx token response could not be parsed") from e

        now = self._clock()
        if "expiration" in payload:
            expires_at = float(payload["expiration"])
        else:
            expires_at = now + float(payload.get("expires_in", 0))

        logger.debug("Obtained Watsonx IAM token")
        return token, expires_at


class WatsonxProvider(BaseLLMProvider):
    """
    IBM Watsonx provider over the text-chat REST endpoint.

    Every generation call first obtains a bearer token from the shared
    WatsonxTokenManager. Watsonx is used for generation only: the embedding
    methods return None.
    """

    def __init__(
        self,
        api_key: Optional[str],
        project_id: Optional[str],
        model: str = "meta-llama/llama-3-3-70b-instruct",
        url: str = "https://jp-tok.ml.cloud.ibm.com/ml/v1/text/chat?version=2023-05-29",
        token_manager: Optional[WatsonxTokenManager] = None,
        timeout: Optional[float] = None,
        session: Optional[requests.Session] = None,
    ):
        """
        Initialize Watsonx provider.

        Args:
            api_key: Watsonx API key
            project_id: Watsonx project the model runs under
            model: Model id
            url: Text-chat endpoint
            token_manager: Shared token manager (one is created if omitted)
            timeout: Default request timeout in seconds
            session: requests session (one is created if omitted)
        """
        api_key = _require_key(api_key, "Watsonx", "WATSONX_API_KEY")
        if not project_id:
            raise ConfigurationError(
                "Watsonx project id not configured. Set WATSONX_PROJECT_ID environment variable."
            )
        self._project_id = project_id
        self._model = model
        self._url = url
        self._timeout = timeout
        self._tokens = token_manager or WatsonxTokenManager(api_key, timeout=timeout)
        self._session = session or requests.Session()

        logger.debug(f"Initializing WatsonxProvider: model={model}")

    def _build_body(self, prompt: str) -> Dict:
        return {
            "messages": [
                {"role": "system", "content": SYSTEM_INSTRUCTION},
                {"role": "user", "content": [{"type": "text", "text": prompt}]},
            ],
            "project_id": self._project_id,
            "model_id": self._model,
            "frequency_penalty": 0,
            "max_tokens": 2000,
            "presence_penalty": 0,
            "temperature": 0,
            "top_p": 1,
            "seed": None,
            "stop": [],
        }

    def generate_content(self, prompt: str, timeout: Optional[float] = None) -> str:
        """Generate response using the Watsonx text-chat endpoint."""
        token = self._tokens.get_token()

        headers = {
            "Accept": "application/json",
            "Content-Type": "application/json",
            "Authorization": f"Bearer {token}",
        }

        try:
            response = self._session.post(
                self._url,
                json=self._build_body(prompt),
                headers=headers,
                timeout=timeout or self._timeout,
            )
        except requests.RequestException as e:
            logger.error(f"Watsonx generation error: {e}")
            raise UpstreamError(f"Watsonx generation failed: {clip(e)}") from e

        if response.status_code == 401:
            self._tokens.invalidate()
        if response.status_code != 200:
            raise UpstreamError(
                f"Watsonx generation failed: HTTP {response.status_code} - {clip(response.text)}"
            )

        try:
            choices = response.json().get("choices") or []
        except ValueError as e:
            raise UpstreamError("Watsonx response could not be parsed") from e

        if not choices:
            raise NoValidResponseError()

        return (choices[0].get("message") or {}).get("content") or ""

    def create_embedding(self, text: str) -> None:
        return None

    def create_batch_embeddings(self, texts: List[str]) -> None:
        return None

    def close(self) -> None:
        self._session.close()

    @property
    def model_name(self) -> str:
        return self._model


class ProviderFactory:
    """
    Maps a logical model type to a freshly constructed provider.

    Providers are not pooled: each ``create`` call builds new vendor
    clients and the caller is responsible for ``close()`` (or a ``with``
    block). Only the Watsonx token cache is shared between calls.

    Example:
        factory = ProviderFactory(settings.llm)
        provider = factory.create(ModelType.GEMINI)
        try:
            text = provider.generate_content("Hello")
        finally:
            provider.close()
    """

    def __init__(self, config: LLMConfig, embedding: Optional[EmbeddingConfig] = None):
        """
        Initialize the factory.

        Args:
            config: LLM configuration holding API keys and model names
            embedding: Embedding configuration (Gemini model, OpenAI batch size)
        """
        self.config = config
        self.embedding = embedding or EmbeddingConfig()
        self._watsonx_tokens: Optional[WatsonxTokenManager] = None
        self._lock = threading.Lock()

        self._builders: Dict[ModelType, Callable[[], BaseLLMProvider]] = {
            ModelType.OPENAI: self.create_openai,
            ModelType.GEMINI: self.create_gemini,
            ModelType.WATSONX: self.create_watsonx,
        }

    def create(self, model_type: Union[str, ModelType, None] = None) -> BaseLLMProvider:
        """
        Create a provider for the given model type.

        Args:
            model_type: ModelType or its string value; the configured
                default is used when empty

        Returns:
            A provider instance (never None)

        Raises:
            UnsupportedProviderError: Unknown model type
            ConfigurationError: The vendor's credentials are missing
        """
        resolved = parse_model_type(model_type or self.config.default_model)
        provider = self._builders[resolved]()
        logger.debug(f"Created {resolved.value} provider ({provider.model_name})")
        return provider

    def create_openai(self) -> OpenAIProvider:
        return OpenAIProvider(
            api_key=self.config.openai_api_key,
            model=self.config.openai_model,
            timeout=self.config.request_timeout,
            batch_size=self.embedding.openai_batch_size,
        )

    def create_gemini(self) -> GeminiProvider:
        return GeminiProvider(
            api_key=self.config.gemini_api_key,
            model=self.config.gemini_model,
            embedding_model=self.embedding.gemini_model,
            timeout=self.config.request_timeout,
        )

    def create_watsonx(self) -> WatsonxProvider:
        return WatsonxProvider(
            api_key=self.config.watsonx_api_key,
            project_id=self.config.watsonx_project_id,
            model=self.config.watsonx_model,
            url=self.config.watsonx_url,
            token_manager=self._watsonx_token_manager(),
            timeout=self.config.request_timeout,
        )

    def _watsonx_token_manager(self) -> WatsonxTokenManager:
        api_key = _require_key(self.config.watsonx_api_key, "Watsonx", "WATSONX_API_KEY")
        with self._lock:
            if self._watsonx_tokens is None:
                self._watsonx_tokens = WatsonxTokenManager(
                    api_key,
                    iam_url=self.config.watsonx_iam_url,
                    cache=self.config.watsonx_cache_token,
                    timeout=self.config.request_timeout,
                )
            return self._watsonx_tokens

    def available_models(self) -> List[str]:
        """Model types whose credentials are configured."""
        available = []
        if self.config.openai_api_key:
            available.append(ModelType.OPENAI.value)
        if self.config.gemini_api_key:
            available.append(ModelType.GEMINI.value)
        if self.config.watsonx_api_key and self.config.watsonx_project_id:
            available.append(ModelType.WATSONX.value)
        return available
