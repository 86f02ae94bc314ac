# File: analysis_service/core/config.py
import sys
import logging
from typing import Optional
from pydantic import Field, field_validator, SecretStr, ValidationError
from pydantic_settings import BaseSettings, SettingsConfigDict

AI_PLATFORM_GLOBAL_HOST = "https://aiplatform.googleapis.com"

class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file='.env',
        env_prefix='ANALYSIS_',
        case_sensitive=False,
        env_file_encoding='utf-8',
        extra='ignore'
    )

    PROJECT_NAME: str = "Skincare Analysis Service"
    LOG_LEVEL: str = "INFO"

    # --- GCP / Vertex AI ---
    GCP_PROJECT_ID: str = Field(description="GCP project that hosts the Vertex AI models.")
    GCP_REGION: str = Field(default="us-central1", description="Region used for the embedding endpoint.")
    GCP_SERVICE_ACCOUNT_KEY: Optional[SecretStr] = Field(default=None, description="Service account JSON (client_email, private_key).")
    GCP_TOKEN_URI: str = "https://oauth2.googleapis.com/token"
    GCP_TOKEN_SCOPE: str = "https://www.googleapis.com/auth/cloud-platform"
    TOKEN_LIFETIME_SECONDS: int = Field(default=3600, gt=0)
    TOKEN_REFRESH_MARGIN_SECONDS: int = Field(default=300, ge=0)

    # --- Gemini ---
    GEMINI_MODEL_NAME: str = "gemini-2.5-pro"
    GEMINI_PLANNING_MODEL_NAME: str = "gemini-2.5-flash"
    GEMINI_TEMPERATURE: float = Field(default=0.6, ge=0, le=2)
    GEMINI_TOP_P: float = Field(default=1.0, ge=0, le=1)
    GEMINI_TOP_K: int = Field(default=32, ge=1, le=100)
    GEMINI_MAX_TOKENS: int = Field(default=8192, ge=1, le=32768)
    MAX_STREAM_RESPONSE_BYTES: int = Field(default=5 * 1024 * 1024, gt=0)

    # --- Embeddings ---
    EMBEDDING_MODEL_NAME: str = "gemini-embedding-001"
    EMBEDDING_DIMENSION: int = 3072
    EMBEDDING_TIMEOUT_SECONDS: float = Field(default=15.0, gt=0)

    # --- Supabase ---
    SUPABASE_URL: str = Field(description="Base URL of the Supabase project.")
    SUPABASE_SERVICE_ROLE_KEY: SecretStr = Field(description="Service role key used for PostgREST and Storage.")
    SKIN_IMAGES_BUCKET: str = "skin-images"
    QUESTIONNAIRE_TABLE: str = "anonymous_questionnaires"
    PRODUCTS_TABLE: str = "products"

    # --- Search ---
    DEFAULT_SEARCH_THRESHOLD: float = Field(default=0.7, ge=0, le=1)
    DEFAULT_SEARCH_COUNT: int = Field(default=10, ge=1, le=50)
    SEARCH_MAX_RETRIES: int = Field(default=3, ge=1)
    RETRY_BACKOFF_SECONDS: float = Field(default=1.0, ge=0)

    # --- Request limits ---
    MAX_IMAGE_PATHS: int = Field(default=10, ge=1, le=20)
    MAX_PROMPT_LENGTH: int = 50000
    MAX_QUERY_LENGTH: int = 1000

    # --- HTTP client ---
    HTTP_CLIENT_TIMEOUT: int = 120
    HTTP_CLIENT_MAX_KEEPALIVE_CONNECTIONS: int = 20
    HTTP_CLIENT_MAX_CONNECTIONS: int = 100

    # --- WeatherKit (optional) ---
    WEATHERKIT_TEAM_ID: Optional[str] = None
    WEATHERKIT_KEY_ID: Optional[str] = None
    WEATHERKIT_SERVICE_ID: Optional[str] = None
    WEATHERKIT_P8_KEY: Optional[SecretStr] = None
    WEATHERKIT_BASE_URL: str = "https://weatherkit.apple.com"

    # --- Server ---
    PORT: int = 8080
    WORKERS: int = 2

    @field_validator('LOG_LEVEL')
    @classmethod
    def check_log_level(cls, v: str) -> str:
        valid_levels = ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]
        if v.upper() not in valid_levels:
            raise ValueError(f"Invalid LOG_LEVEL '{v}'. Must be one of {valid_levels}")
        return v.upper()

    @field_validator('SUPABASE_URL')
    @classmethod
    def strip_trailing_slash(cls, v: str) -> str:
        return v.rstrip('/')

    @property
    def gemini_synthesis_endpoint(self) -> str:
        return self._gemini_model_base(self.GEMINI_MODEL_NAME)

    @property
    def gemini_planning_endpoint(self) -> str:
        return self._gemini_model_base(self.GEMINI_PLANNING_MODEL_NAME)

    @property
    def embedding_endpoint(self) -> str:
        return (
            f"https://{self.GCP_REGION}-aiplatform.googleapis.com/v1/projects/{self.GCP_PROJECT_ID}"
            f"/locations/{self.GCP_REGION}/publishers/google/models/{self.EMBEDDING_MODEL_NAME}:predict"
        )

    def _gemini_model_base(self, model_name: str) -> str:
        # 'global' location for higher availability
        return (
            f"{AI_PLATFORM_GLOBAL_HOST}/v1/projects/{self.GCP_PROJECT_ID}"
            f"/locations/global/publishers/google/models/{model_name}"
        )

temp_log = logging.getLogger("analysis_service.config.loader")
if not temp_log.handlers:
    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(logging.Formatter('%(levelname)s: %(message)s'))
    temp_log.addHandler(handler)
    temp_log.setLevel(logging.INFO)

try:
    temp_log.info("Loading Skincare Analysis Service settings...")
    settings = Settings()
    temp_log.info("--- Skincare Analysis Service Settings Loaded ---")
    temp_log.info(f"  PROJECT_NAME: {settings.PROJECT_NAME}")
    temp_log.info(f"  LOG_LEVEL: {settings.LOG_LEVEL}")
    temp_log.info(f"  GCP_PROJECT_ID: {settings.GCP_PROJECT_ID}")
    temp_log.info(f"  GCP_REGION: {settings.GCP_REGION}")
    temp_log.info(f"  GEMINI_MODEL_NAME: {settings.GEMINI_MODEL_NAME} (planning: {settings.GEMINI_PLANNING_MODEL_NAME})")
    temp_log.info(f"  EMBEDDING_MODEL_NAME: {settings.EMBEDDING_MODEL_NAME}")
    temp_log.info(f"  SUPABASE_URL: {settings.SUPABASE_URL}")
    temp_log.info(f"  SERVICE_ACCOUNT_CONFIGURED: {settings.GCP_SERVICE_ACCOUNT_KEY is not None}")
    temp_log.info("-------------------------------------------------")
except ValidationError as e:
    temp_log.critical(f"FATAL: Skincare Analysis Service configuration validation failed:\n{e}")
    sys.exit("FATAL: Invalid configuration. Check logs.")
