# taskrecall/infrastructure/embedding_engine.py
# model_name stays as a concrete property, it is not part of the port

import logging
from typing import Optional

import numpy as np
import openai
from openai import OpenAI
from sentence_transformers import SentenceTransformer

from taskrecall.domain.errors import (
    InvalidInput,
    ProviderMalformedResponse,
    ProviderUnavailable,
)
from taskrecall.domain.interfaces import EmbeddingPort
from taskrecall.domain.vectors import coerce_vector


logger = logging.getLogger(__name__)

DEFAULT_MODEL_NAME = "all-MiniLM-L6-v2"
DEFAULT_OPENAI_MODEL = "text-embedding-3-small"
DEFAULT_OPENAI_DIMENSIONS = 1536
DEFAULT_TIMEOUT_SECONDS = 15.0


def _require_text(text: str) -> str:
    if text is None or not text.strip():
        raise InvalidInput("Text to embed cannot be empty.")
    return text.strip()


class SentenceTransformerEngine(EmbeddingPort):

    def __init__(self, model_name: str = DEFAULT_MODEL_NAME):
        logger.info("Loading embedding model: %s ...", model_name)
        self._model_name = model_name
        self._model = SentenceTransformer(model_name)
        self._dimension = int(self._model.get_sentence_embedding_dimension())
        logger.info("Embedding model ready (dimension=%d).", self._dimension)

    @property
    def model_name(self) -> str:
        """Concrete property, used for store fingerprinting. Not part of the port."""
        return self._model_name

    @property
    def dimension(self) -> int:
        return self._dimension

    def embed(self, text: str) -> np.ndarray:
        text = _require_text(text)
        try:
            raw = self._model.encode(
                text,
                convert_to_numpy=True,
                normalize_embeddings=True,
            )
        except Exception as error:
            raise ProviderUnavailable(f"Local embedding model failed: {error}") from error

        return coerce_vector(raw, self._dimension, error=ProviderMalformedResponse)


class OpenAIEmbeddingEngine(EmbeddingPort):
    """
    Remote embeddings through the OpenAI API.

    The client never retries on its own and gives up after `timeout` seconds;
    retry policy belongs to whoever called embed().
    """

    def __init__(
        self,
        api_key: Optional[str] = None,
        model_name: str = DEFAULT_OPENAI_MODEL,
        dimension: int = DEFAULT_OPENAI_DIMENSIONS,
        timeout: float = DEFAULT_TIMEOUT_SECONDS,
        base_url: Optional[str] = None,
        client: Optional[OpenAI] = None,
    ):
        self._model_name = model_name
        self._dimension = dimension
        self._client = client or OpenAI(
            api_key=api_key,
            base_url=base_url,
            timeout=timeout,
            max_retries=0,
        )

    @property
    def model_name(self) -> str:
        return self._model_name

    @property
    def dimension(self) -> int:
        return self._dimension

    def embed(self, text: str) -> np.ndarray:
        text = _require_text(text)
        try:
            response = self._client.embeddings.create(model=self._model_name, input=text)
        except openai.APIResponseValidationError as error:
            raise ProviderMalformedResponse(f"Unreadable embeddings response: {error}") from error
        except (openai.APIConnectionError, openai.APIStatusError) as error:
            logger.warning("Embedding request failed: %s", error)
            raise ProviderUnavailable(f"Embedding provider unavailable: {error}") from error

        try:
            raw = response.data[0].embedding
        except (AttributeError, IndexError, TypeError) as error:
            raise ProviderMalformedResponse("Embeddings response has no vector.") from error

        return coerce_vector(raw, self._dimension, error=ProviderMalformedResponse)


def build_embedding_engine(settings) -> EmbeddingPort:
    """Pick the embedding implementation named by EMBEDDING_PROVIDER."""
    if settings.embedding_provider == "openai":
        return OpenAIEmbeddingEngine(
            api_key=settings.openai_api_key,
            model_name=settings.embedding_model,
            dimension=settings.embedding_dimensions,
            timeout=settings.embedding_timeout_seconds,
            base_url=settings.openai_base_url,
        )
    return SentenceTransformerEngine(model_name=settings.embedding_model)
