"""
Text-inference providers for the RAG pipeline.

One inference capability (``complete``) with three named operations layered
on top of it:

- ``generate``: free-text answers (synthesis, hypothetical answers)
- ``complete_json``: structured output for expansion and routing decisions
- ``rank``: low-temperature relevance judgements for reranking
"""

from abc import ABC, abstractmethod
from typing import Any, Dict, List, Optional
from langchain_core.exceptions import OutputParserException
from langchain_core.output_parsers import JsonOutputParser, StrOutputParser
from langchain_openai import ChatOpenAI
from ragcore.utils.logging import get_logger
from ragcore.utils.exceptions import (
    InferenceUnavailable,
    InferenceTimeout,
    MalformedUpstreamOutput
)
from ragcore.utils.decorators import with_timeout
from ragcore.config.settings import LLMConfig, get_config

logger = get_logger(__name__)

Messages = List[Dict[str, str]]

_json_parser = JsonOutputParser()


def parse_json_output(text: str) -> Any:
    """
    Parse a JSON response, tolerating markdown code fences and surrounding prose.

    Args:
        text: Raw model output

    Returns:
        Parsed JSON value

    Raises:
        MalformedUpstreamOutput: If the text is not valid JSON
    """
    if not text or not text.strip():
        raise MalformedUpstreamOutput("Empty response where JSON was required")

    try:
        return _json_parser.parse(text)
    except OutputParserException as e:
        raise MalformedUpstreamOutput(f"Expected JSON, got: {text.strip()[:120]!r}") from e


class TextInferenceService(ABC):
    """Abstract base class for text-inference services."""

    @property
    def is_configured(self) -> bool:
        """Whether the service has what it needs to serve calls."""
        return True

    @abstractmethod
    async def complete(
        self,
        messages: Messages,
        temperature: float = 0.7,
        max_tokens: int = 800,
        json_mode: bool = False
    ) -> str:
        """
        Run one completion.

        Args:
            messages: Chat messages as ``{"role", "content"}`` dicts
            temperature: Sampling temperature
            max_tokens: Maximum completion tokens
            json_mode: Ask the model for a JSON object

        Returns:
            Completion text

        Raises:
            InferenceUnavailable: If the service is unconfigured or failing
            InferenceTimeout: If the call exceeds its timeout
        """
        pass

    async def generate(
        self,
        messages: Messages,
        temperature: float = 0.7,
        max_tokens: int = 600
    ) -> str:
        """Free-text generation."""
        text = await self.complete(messages, temperature=temperature, max_tokens=max_tokens)
        if not text or not text.strip():
            raise MalformedUpstreamOutput("No response content from inference service")
        return text

    async def complete_json(
        self,
        messages: Messages,
        temperature: float = 0.3,
        max_tokens: int = 500
    ) -> Any:
        """Structured generation; returns the parsed JSON value."""
        text = await self.complete(
            messages,
            temperature=temperature,
            max_tokens=max_tokens,
            json_mode=True
        )
        return parse_json_output(text)

    async def rank(self, messages: Messages, max_tokens: int = 500) -> Any:
        """Relevance judgement; deterministic-leaning JSON output."""
        return await self.complete_json(messages, temperature=0.1, max_tokens=max_tokens)

    async def close(self) -> None:
        """Release any held resources."""
        return None


class OpenAIInferenceService(TextInferenceService):
    """OpenAI chat-completion service built on LangChain's ChatOpenAI."""

    def __init__(
        self,
        api_key: Optional[str] = None,
        config: Optional[LLMConfig] = None,
        llm: Optional[ChatOpenAI] = None
    ):
        """
        Initialize the OpenAI inference service.

        Args:
            api_key: OpenAI API key (defaults to configuration)
            config: LLM configuration
            llm: Pre-built ChatOpenAI client
        """
        rag_config = get_config()
        self.config = config or rag_config.llm
        self.api_key = api_key or rag_config.openai_api_key
        self.model_name = self.config.model_name
        self.timeout = self.config.timeout

        if llm is not None:
            self.llm = llm
        elif self.api_key:
            self.llm = ChatOpenAI(
                model=self.model_name,
                temperature=self.config.temperature,
                max_tokens=self.config.max_tokens,
                timeout=self.timeout,
                max_retries=0,
                openai_api_key=self.api_key
            )
        else:
            self.llm = None
            logger.warning("⚠️ OpenAI API key is not set. Chat completions will fail until configured.")

        logger.info(f"🤖 Initialized OpenAI inference service: {self.model_name}")

    @property
    def is_configured(self) -> bool:
        return self.llm is not None

    async def complete(
        self,
        messages: Messages,
        temperature: float = 0.7,
        max_tokens: int = 800,
        json_mode: bool = False
    ) -> str:
        """
        Run one chat completion under the configured timeout.

        Raises:
            InferenceUnavailable: If unconfigured or the API call fails
            InferenceTimeout: If the call exceeds the configured timeout
        """
        if self.llm is None:
            raise InferenceUnavailable("OPENAI_API_KEY is missing; chat completions are disabled")

        call_kwargs: Dict[str, Any] = {"temperature": temperature, "max_tokens": max_tokens}
        if json_mode:
            call_kwargs["response_format"] = {"type": "json_object"}

        chain = self.llm.bind(**call_kwargs) | StrOutputParser()

        try:
            content = await with_timeout(
                chain.ainvoke(messages),
                self.timeout,
                InferenceTimeout,
                "chat completion"
            )
        except InferenceTimeout:
            raise
        except Exception as e:
            raise InferenceUnavailable(f"Chat completion failed: {str(e)}") from e

        return content or ""
