import os
from pydantic_settings import BaseSettings
from typing import Optional

# Get the root path of the project (the 'backend' directory)
PROJECT_ROOT = os.path.dirname(os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

class Settings(BaseSettings):
    """
    Pydantic settings class to manage application configuration.
    It automatically reads environment variables from a .env file.
    """
    # --- Core Application Settings ---
    PROJECT_NAME: str = "Customer Feedback Insights API"
    API_V1_STR: str = "/api/v1"

    # --- Database Settings ---
    # The default URL points to a SQLite database file in the project's backend root.
    DATABASE_URL: str = f"sqlite:///{os.path.join(PROJECT_ROOT, 'feedback_insights.db')}"

    # --- LLM Settings ---
    LLM_PROVIDER: str = "anthropic"
    LLM_TIMEOUT: int = 30
    LLM_MAX_TOKENS: Optional[int] = None
    ANALYSIS_TEMPERATURE: float = 0.1
    EVAL_TEMPERATURE: float = 0.0

    ANTHROPIC_API_KEY: Optional[str] = None
    ANTHROPIC_MODEL: Optional[str] = None
    GOOGLE_API_KEY: Optional[str] = None
    GEMINI_MODEL: Optional[str] = None
    GOOGLE_APPLICATION_CREDENTIALS: Optional[str] = None
    AZURE_OPENAI_KEY: Optional[str] = None
    AZURE_OPENAI_BASE: Optional[str] = None
    AZURE_API_VERSION: Optional[str] = None
    AZURE_DEPLOYMENT_NAME: Optional[str] = None
    OPENAI_MODEL: Optional[str] = None
    OPENAI_API_KEY: Optional[str] = None
    OPENAI_API_BASE: Optional[str] = None
    OLLAMA_MODEL: Optional[str] = None
    OLLAMA_BASE_URL: Optional[str] = None

    # --- Topic Analysis Settings ---
    ANALYSIS_BATCH_SIZE: int = 3
    ANALYSIS_MAX_CHUNKS: int = 20
    # Above this many chunks the synchronous endpoint will not analyse from scratch.
    ANALYSIS_SYNC_CHUNK_THRESHOLD: int = 30
    ANALYSIS_MIN_CHUNK_LENGTH: int = 50
    ANALYSIS_BATCH_PAUSE_SECONDS: float = 0.1
    RELEVANCE_THRESHOLD: int = 4
    MAX_RECOMMENDATIONS: int = 3
    STREAM_KEEPALIVE_SECONDS: float = 5.0

    # --- Evaluation Worker Settings ---
    EVAL_WORKER_ENABLED: bool = True
    EVAL_STARTUP_DELAY_SECONDS: float = 10.0
    EVAL_INTERVAL_SECONDS: float = 120.0
    EVAL_PAGE_SIZE: int = 20
    EVAL_BATCH_SIZE: int = 5
    EVAL_BATCH_PAUSE_SECONDS: float = 1.0

    @property
    def llm_configured(self) -> bool:
        """True when the selected provider has the credentials it needs."""
        provider = (self.LLM_PROVIDER or "").lower()
        if provider == "anthropic":
            return bool(self.ANTHROPIC_API_KEY)
        if provider == "gemini":
            return bool(self.GOOGLE_API_KEY or self.GOOGLE_APPLICATION_CREDENTIALS)
        if provider == "azure":
            return all([self.AZURE_OPENAI_KEY, self.AZURE_OPENAI_BASE, self.AZURE_API_VERSION])
        if provider == "openai":
            return bool(self.OPENAI_API_KEY)
        if provider == "ollama":
            return bool(self.OLLAMA_BASE_URL)
        return False

    class Config:
        """
        Pydantic config subclass to specify the .env file location.
        """
        env_file = os.path.join(PROJECT_ROOT, ".env")
        env_file_encoding = 'utf-8'
        extra = "ignore" # Allow extra fields from .env to be ignored

# Instantiate the settings object that will be used throughout the application.
settings = Settings()
