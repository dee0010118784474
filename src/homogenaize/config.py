import os

from dotenv import load_dotenv

# Load from .env if it exists (useful for local development)
load_dotenv()

# Provider credentials
OPENAI_API_KEY = os.getenv("OPENAI_API_KEY", "")
ANTHROPIC_API_KEY = os.getenv("ANTHROPIC_API_KEY", "")
GEMINI_API_KEY = os.getenv("GEMINI_API_KEY", "")

API_KEY_ENV = {
    "openai": "OPENAI_API_KEY",
    "anthropic": "ANTHROPIC_API_KEY",
    "gemini": "GEMINI_API_KEY",
}

# Endpoints
OPENAI_BASE_URL = os.getenv("OPENAI_BASE_URL", "https://api.openai.com/v1")
ANTHROPIC_BASE_URL = os.getenv("ANTHROPIC_BASE_URL", "https://api.anthropic.com/v1")
GEMINI_BASE_URL = os.getenv(
    "GEMINI_BASE_URL", "https://generativelanguage.googleapis.com/v1beta"
)
ANTHROPIC_VERSION = "2023-06-01"

# Request defaults
REQUEST_TIMEOUT_S = float(os.getenv("HOMOGENAIZE_TIMEOUT_S", "120"))
DEFAULT_MAX_TOKENS = 4096  # Anthropic requires max_tokens on every request

# Logging
LOGGING_LEVEL = os.getenv("HOMOGENAIZE_LOG_LEVEL", "").upper()
LOG_FORMAT = os.getenv("HOMOGENAIZE_LOG_FORMAT", "pretty").lower()
