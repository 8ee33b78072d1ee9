from pydantic_settings import BaseSettings
from pydantic import field_validator
from typing import List, Optional

def parse_comma_list(v):
    """Parse comma-separated string into list. 'none' means empty/no filtering."""
    if isinstance(v, list):
        return v
    if isinstance(v, str):
        # Treat 'none' as no filtering
        if v.strip().lower() == 'none':
            return []
        return [x.strip() for x in v.split(',') if x.strip() and x.strip().lower() != 'none']
    return []

class Settings(BaseSettings):
    # App Settings
    LOG_LEVEL: str = "INFO"
    LOG_FILE: Optional[str] = None  # Extra log file, e.g. /var/log/threadmem/app.log
    API_PORT: int = 10002

    # Database
    DATABASE_URL: Optional[str] = None
    REDIS_URL: Optional[str] = None
    MESSAGES_TABLE: str = "messages"  # Conversation store table: (id, role, content)

    # AI - Support multiple naming conventions
    AI_PROVIDER: str = "openai"
    AI_MODEL: Optional[str] = None
    AI_API_KEY: Optional[str] = None
    OPENAI_API_KEY: Optional[str] = None
    GROQ_API_KEY: Optional[str] = None

    def get_ai_key(self, provider: str = None) -> Optional[str]:
        """Get API key for the specified or default provider."""
        provider = provider or self.AI_PROVIDER
        mapping = {
            'openai': self.OPENAI_API_KEY or self.AI_API_KEY,
            'groq': self.GROQ_API_KEY,
        }
        return mapping.get(provider.lower())

    # Summary memory
    SUMMARY_ENABLED: bool = True
    SUMMARY_DISABLED_THREADS: Optional[str] = None  # Comma-separated thread ids
    SUMMARY_MAX_DELTAS: int = 20
    SUMMARY_DIGEST_MAX_CHARS: int = 1500
    SUMMARY_SAVE_ATTEMPTS: int = 3  # Version-conflict retries before giving up
    SUMMARY_WORKERS: int = 2
    SUMMARY_QUEUE_SIZE: int = 1000
    SUMMARY_DIGEST_CACHE_TTL: int = 3600

    # Fallback extraction template (used when no summary_prompts table is available)
    SUMMARY_PROMPT: Optional[str] = None
    SUMMARY_MODEL: Optional[str] = None  # Falls back to AI_MODEL, then the provider default
    SUMMARY_TEMPERATURE: float = 0.2
    SUMMARY_MAX_TOKENS: int = 1000

    @field_validator('SUMMARY_MAX_DELTAS', 'SUMMARY_DIGEST_MAX_CHARS', 'SUMMARY_SAVE_ATTEMPTS',
                     'SUMMARY_WORKERS', 'API_PORT', mode='before')
    @classmethod
    def parse_optional_int(cls, v, info):
        if v is None or v == '':
            defaults = {
                'SUMMARY_MAX_DELTAS': 20,
                'SUMMARY_DIGEST_MAX_CHARS': 1500,
                'SUMMARY_SAVE_ATTEMPTS': 3,
                'SUMMARY_WORKERS': 2,
                'API_PORT': 10002,
            }
            return defaults.get(info.field_name)
        return int(v)

    @property
    def disabled_threads_list(self) -> List[str]:
        return parse_comma_list(self.SUMMARY_DISABLED_THREADS)

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"
        extra = "ignore"  # Ignore unknown env vars

settings = Settings()
