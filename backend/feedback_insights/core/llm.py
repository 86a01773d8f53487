# In backend/core/llm.py

import logging
import concurrent.futures
from typing import List, Dict, Any, Optional, Union
from dataclasses import dataclass
from enum import Enum

# LangChain is used as an abstraction layer to interact with various LLM providers.
# This makes it easy to switch between models like Claude, Gemini, OpenAI, etc.
try:
    from langchain_anthropic import ChatAnthropic
    from langchain_openai import ChatOpenAI, AzureChatOpenAI
    from langchain_google_genai import ChatGoogleGenerativeAI
    from langchain_community.chat_models import ChatOllama
    from langchain_core.messages import HumanMessage, SystemMessage, AIMessage
except ImportError as e:
    raise ImportError(
        "Required LangChain packages not found. Please install:\n"
        "pip install langchain-core langchain-anthropic langchain-openai langchain-google-genai langchain-community"
    ) from e

from feedback_insights.core.config import settings

logger = logging.getLogger(__name__)

# Provider calls run here so the caller can wait on them with a deadline.
# A timed-out call keeps its worker until the provider returns.
_CALL_EXECUTOR = concurrent.futures.ThreadPoolExecutor(max_workers=32, thread_name_prefix="llm-call")


class LLMProvider(Enum):
    """Supported LLM providers."""
    ANTHROPIC = "anthropic"
    GEMINI = "gemini"
    AZURE = "azure"
    OPENAI = "openai"
    OLLAMA = "ollama"


@dataclass
class LLMConfig:
    """Configuration for LLM providers."""
    provider: LLMProvider
    model: str
    temperature: float = 0.1
    max_tokens: Optional[int] = None
    timeout: int = 30

    # Provider-specific configs
    api_key: Optional[str] = None
    api_base: Optional[str] = None
    api_version: Optional[str] = None
    deployment_name: Optional[str] = None
    credentials_path: Optional[str] = None


class LLMError(Exception):
    """Base exception for LLM-related errors."""
    pass


class ConfigurationError(LLMError):
    """Raised when LLM configuration is invalid."""
    pass


class ProviderError(LLMError):
    """Raised when LLM provider call fails."""
    pass


class LLMTimeoutError(LLMError, TimeoutError):
    """Raised when the provider does not answer within the configured timeout."""
    pass


class ParseError(LLMError):
    """Raised when a completion does not contain the expected JSON."""
    pass


class LLMManager:
    """
    Unified LLM interface supporting multiple providers.

    `invoke` is the gateway used by the analysis, grouping and evaluation
    services: prompt text in, completion text out, bounded by `timeout`.
    It never retries; retry policy belongs to the callers.
    """

    DEFAULT_MODELS = {
        LLMProvider.ANTHROPIC: "claude-3-5-sonnet-20241022",
        LLMProvider.GEMINI: "gemini-2.5-flash",
        LLMProvider.AZURE: "gpt-4o",
        LLMProvider.OPENAI: "gpt-4o",
        LLMProvider.OLLAMA: "llama3",
    }

    def __init__(self, config: Optional[LLMConfig] = None, llm: Any = None):
        """Initialize LLM Manager with configuration, or with a prebuilt chat model."""
        self.config = config or self._load_config_from_env()

        logger.debug(f"LLMManager: Initializing with provider={self.config.provider.value}, model={self.config.model}")
        if llm is not None:
            self.llm = llm
            return
        try:
            self._validate_config()
            self.llm = self._initialize_llm()
            logger.debug(f"LLMManager: LLM initialized successfully for provider: {self.config.provider.value}")
        except ConfigurationError as e:
            logger.warning(f"LLMManager: Initialization failed: {e}")
            raise

    @classmethod
    def from_env(cls, provider: Optional[str] = None, temperature: Optional[float] = None) -> "LLMManager":
        """Create LLMManager from application settings."""
        logger.debug(f"LLMManager: Creating from settings with provider override: {provider}, temperature: {temperature}")
        return cls(cls._load_config_from_env(provider, temperature))

    @classmethod
    def _load_config_from_env(cls, provider: Optional[str] = None, temperature: Optional[float] = None) -> LLMConfig:
        """Load configuration from the settings object (which reads the environment)."""
        provider_str = provider or settings.LLM_PROVIDER or "anthropic"

        try:
            provider_enum = LLMProvider(provider_str.lower())
        except ValueError as e:
            valid_providers = [p.value for p in LLMProvider]
            logger.error(f"LLMManager: Invalid LLM_PROVIDER: '{provider_str}'. Valid options: {valid_providers}")
            raise ConfigurationError(
                f"Invalid LLM_PROVIDER: {provider_str}. "
                f"Valid options: {valid_providers}"
            ) from e

        common = dict(
            temperature=settings.ANALYSIS_TEMPERATURE if temperature is None else temperature,
            max_tokens=settings.LLM_MAX_TOKENS,
            timeout=settings.LLM_TIMEOUT,
        )
        default_model = cls.DEFAULT_MODELS[provider_enum]

        if provider_enum == LLMProvider.ANTHROPIC:
            return LLMConfig(
                provider=provider_enum,
                model=settings.ANTHROPIC_MODEL or default_model,
                api_key=settings.ANTHROPIC_API_KEY,
                **common,
            )
        elif provider_enum == LLMProvider.GEMINI:
            return LLMConfig(
                provider=provider_enum,
                model=settings.GEMINI_MODEL or default_model,
                api_key=settings.GOOGLE_API_KEY,
                credentials_path=settings.GOOGLE_APPLICATION_CREDENTIALS,
                **common,
            )
        elif provider_enum == LLMProvider.AZURE:
            deployment_name = settings.AZURE_DEPLOYMENT_NAME or default_model
            return LLMConfig(
                provider=provider_enum,
                model=deployment_name, # Use deployment_name as model for Azure
                api_key=settings.AZURE_OPENAI_KEY,
                api_base=settings.AZURE_OPENAI_BASE,
                api_version=settings.AZURE_API_VERSION,
                deployment_name=deployment_name,
                **common,
            )
        elif provider_enum == LLMProvider.OPENAI:
            return LLMConfig(
                provider=provider_enum,
                model=settings.OPENAI_MODEL or default_model,
                api_key=settings.OPENAI_API_KEY,
                api_base=settings.OPENAI_API_BASE or "https://api.openai.com/v1",
                **common,
            )
        else:
            return LLMConfig(
                provider=provider_enum,
                model=settings.OLLAMA_MODEL or default_model,
                api_base=settings.OLLAMA_BASE_URL or "http://localhost:11434",
                **common,
            )

    def _validate_config(self) -> None:
        """Validate the current configuration."""
        if self.config.provider == LLMProvider.ANTHROPIC:
            if not self.config.api_key:
                raise ConfigurationError("Anthropic requires ANTHROPIC_API_KEY.")
        elif self.config.provider == LLMProvider.GEMINI:
            if not (self.config.api_key or self.config.credentials_path):
                raise ConfigurationError("Gemini requires either GOOGLE_API_KEY or GOOGLE_APPLICATION_CREDENTIALS.")
        elif self.config.provider == LLMProvider.AZURE:
            missing = [var for var in ["api_key", "api_base", "api_version", "deployment_name"] if not getattr(self.config, var)]
            if missing:
                raise ConfigurationError(f"Missing required Azure config: {missing}")
        elif self.config.provider == LLMProvider.OPENAI:
            if not self.config.api_key:
                raise ConfigurationError("OpenAI requires OPENAI_API_KEY.")
        elif self.config.provider == LLMProvider.OLLAMA:
            if not self.config.api_base:
                raise ConfigurationError("Ollama requires OLLAMA_BASE_URL.")
        logger.debug(f"LLMManager: Config validation successful for provider: {self.config.provider.value}")

    def _initialize_llm(self):
        """Initialize the appropriate LangChain chat model."""
        cfg = self.config
        try:
            if cfg.provider == LLMProvider.ANTHROPIC:
                return ChatAnthropic(model=cfg.model, api_key=cfg.api_key, temperature=cfg.temperature, max_tokens=cfg.max_tokens or 1024, timeout=cfg.timeout)
            elif cfg.provider == LLMProvider.GEMINI:
                return ChatGoogleGenerativeAI(model=cfg.model, temperature=cfg.temperature, google_api_key=cfg.api_key, max_output_tokens=cfg.max_tokens)
            elif cfg.provider == LLMProvider.AZURE:
                return AzureChatOpenAI(azure_deployment=cfg.deployment_name, openai_api_version=cfg.api_version, azure_endpoint=cfg.api_base, api_key=cfg.api_key, temperature=cfg.temperature, max_tokens=cfg.max_tokens, timeout=cfg.timeout)
            elif cfg.provider == LLMProvider.OPENAI:
                return ChatOpenAI(model=cfg.model, api_key=cfg.api_key, base_url=cfg.api_base, temperature=cfg.temperature, max_tokens=cfg.max_tokens, timeout=cfg.timeout)
            else:
                return ChatOllama(model=cfg.model, base_url=cfg.api_base, temperature=cfg.temperature)
        except Exception as e:
            logger.critical(f"LLMManager: Failed to initialize {cfg.provider.value} LLM: {e}")
            raise ConfigurationError(f"Failed to initialize {cfg.provider.value} LLM: {e}") from e

    def _format_messages(self, messages: List[Dict[str, str]]) -> List[Union[HumanMessage, SystemMessage, AIMessage]]:
        """Convert message dictionaries to LangChain message objects."""
        formatted_messages = []
        for msg in messages:
            role, content = msg.get("role", "").lower(), msg.get("content", "")
            if role == "system": formatted_messages.append(SystemMessage(content=content))
            elif role in ("user", "human"): formatted_messages.append(HumanMessage(content=content))
            elif role in ("assistant", "ai"): formatted_messages.append(AIMessage(content=content))
            else: logger.warning(f"LLMManager: Unknown message role: {role}, treating as human."); formatted_messages.append(HumanMessage(content=content))
        return formatted_messages

    @staticmethod
    def _content_to_text(content: Any) -> str:
        """Chat models return either a string or a list of content blocks."""
        if isinstance(content, str):
            return content
        if isinstance(content, list):
            parts = []
            for block in content:
                if isinstance(block, str):
                    parts.append(block)
                elif isinstance(block, dict) and block.get("type") == "text":
                    parts.append(block.get("text", ""))
            return "".join(parts)
        return str(content)

    def get_response(self, messages: List[Dict[str, str]]) -> str:
        """Get response from the configured LLM, waiting at most `config.timeout` seconds."""
        formatted_messages = self._format_messages(messages)
        logger.debug(f"LLMManager: Calling {self.config.provider.value} with {len(messages)} messages.")
        future = _CALL_EXECUTOR.submit(self.llm.invoke, formatted_messages)
        try:
            response = future.result(timeout=self.config.timeout)
        except concurrent.futures.TimeoutError as e:
            future.cancel()
            logger.warning(f"LLMManager: {self.config.provider.value} call timed out after {self.config.timeout}s")
            raise LLMTimeoutError(f"LLM call timeout after {self.config.timeout}s") from e
        except Exception as e:
            error_msg = f"{self.config.provider.value} call failed: {str(e)}"
            logger.error(f"LLMManager: {error_msg}")
            raise ProviderError(error_msg) from e

        text = self._content_to_text(getattr(response, "content", response)).strip()
        logger.debug(f"LLMManager: Received response from {self.config.provider.value}. Content length: {len(text)}")
        return text

    def invoke(self, prompt_text: str) -> str:
        """Send a single user prompt and return the completion text."""
        return self.get_response([{"role": "user", "content": prompt_text}])
