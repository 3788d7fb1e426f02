"""
Configuration module for loading environment variables
"""

import os
from typing import List, Optional

from dotenv import load_dotenv

# Load environment variables from .env file
load_dotenv()


class Config:
    """Application configuration"""

    # Database Configuration (DATABASE_URL wins over the individual parts)
    DATABASE_URL: Optional[str] = os.getenv("DATABASE_URL")
    DATABASE_HOST: str = os.getenv("DATABASE_HOST", "127.0.0.1")
    DATABASE_PORT: str = os.getenv("DATABASE_PORT", "5432")
    DATABASE_USER: str = os.getenv("DATABASE_USER", "safeher")
    DATABASE_PASSWORD: str = os.getenv("DATABASE_PASSWORD", "")
    DATABASE_NAME: str = os.getenv("DATABASE_NAME", "safeher")
    DATABASE_POOL_SIZE: int = int(os.getenv("DATABASE_POOL_SIZE", "5"))
    DATABASE_ECHO: bool = os.getenv("DATABASE_ECHO", "false").lower() == "true"

    # OpenAI Configuration
    OPENAI_API_KEY: Optional[str] = os.getenv("OPENAI_API_KEY")
    OPENAI_MODEL: str = os.getenv("OPENAI_MODEL", "gpt-4.1-mini")
    LLM_TIMEOUT_SECONDS: float = float(os.getenv("LLM_TIMEOUT_SECONDS", "10"))

    # Mapbox Configuration
    MAPBOX_TOKEN: Optional[str] = os.getenv("MAPBOX_TOKEN")
    MAPBOX_BASE_URL: str = os.getenv("MAPBOX_BASE_URL", "https://api.mapbox.com")
    DIRECTIONS_TIMEOUT_SECONDS: float = float(
        os.getenv("DIRECTIONS_TIMEOUT_SECONDS", "10")
    )

    # Browser origins allowed by CORS, comma separated
    CORS_ALLOW_ORIGINS: List[str] = [
        origin.strip()
        for origin in os.getenv("CORS_ALLOW_ORIGINS", "*").split(",")
        if origin.strip()
    ]

    # Story summaries are generated on create when the LLM is configured
    SUMMARIZE_STORIES: bool = os.getenv("SUMMARIZE_STORIES", "true").lower() == "true"

    @classmethod
    def llm_enabled(cls) -> bool:
        """Check if the language-model credential is present"""
        return bool(cls.OPENAI_API_KEY)

    @classmethod
    def directions_enabled(cls) -> bool:
        """Check if the directions credential is present"""
        return bool(cls.MAPBOX_TOKEN)


config = Config()
