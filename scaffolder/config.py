#  Project Scaffolder - Configuration
#
#  Loads config.json and provides typed access to all settings.
#  Dot-notation path lookup: cfg("vercel.poll_interval_sec")
#  Credentials are never read from config.json, only from the environment.
#
#  Depends on: config.json (optional)
#  Used by:    all scaffolder modules

import json
import os
from pathlib import Path

# ---------------------------------------------------------------------------
# Path resolution
# ---------------------------------------------------------------------------

PROJECT_ROOT = Path(__file__).parent.parent
CONFIG_PATH = PROJECT_ROOT / "config.json"
DATA_DIR = PROJECT_ROOT / "data"
DB_PATH = DATA_DIR / "scaffolder.db"

# ---------------------------------------------------------------------------
# Load config
# ---------------------------------------------------------------------------

_config: dict = {}


def _load_config(path: Path | None = None):
    """Load configuration from JSON file (internal — called once at import time).

    Module-level constants below are snapshots from _config.
    """
    global _config
    config_path = path or CONFIG_PATH
    if not config_path.exists():
        raise FileNotFoundError(
            f"Config file not found: {config_path}. "
            "Copy config.example.json to config.json."
        )
    with open(config_path) as f:
        _config = json.load(f)


# Auto-load if config exists at import time
if CONFIG_PATH.exists():
    _load_config()


def cfg(path: str, default=None):
    """Get a config value by dot-notation path.

    Example: cfg("llm.models.gemini") -> "gemini-pro"
    """
    keys = path.split(".")
    val = _config
    for key in keys:
        if isinstance(val, dict) and key in val:
            val = val[key]
        else:
            return default
    return val


# ---------------------------------------------------------------------------
# Convenience constants
# ---------------------------------------------------------------------------

HOST = cfg("server.host", "0.0.0.0")
PORT = cfg("server.port", 5300)
LOG_LEVEL = cfg("server.log_level", "INFO")
LOG_FORMAT = cfg("server.log_format", "json")
CORS_ORIGINS = cfg("server.cors_origins", [
    "http://localhost:3000",
    f"http://localhost:{PORT}",
    "http://127.0.0.1:3000",
    f"http://127.0.0.1:{PORT}",
])

# LLM providers
LLM_DEFAULT_PROVIDER = cfg("llm.default_provider", "anthropic")
LLM_MODELS = {
    "anthropic": cfg("llm.models.anthropic", "claude-sonnet-4-20250514"),
    "openai": cfg("llm.models.openai", "gpt-4-turbo-preview"),
    "gemini": cfg("llm.models.gemini", "gemini-pro"),
}
LLM_MAX_TOKENS = {
    "anthropic": cfg("llm.max_tokens.anthropic", 4096),
    "openai": cfg("llm.max_tokens.openai", 4096),
    "gemini": cfg("llm.max_tokens.gemini", 2048),
}
LLM_TEMPERATURE = cfg("llm.temperature", 0.7)
LLM_GENERATION_MAX_TOKENS = cfg("llm.generation_max_tokens", 8192)
LLM_TIMEOUT = cfg("llm.timeout", 120)
GEMINI_API_URL = cfg("llm.gemini_api_url", "https://generativelanguage.googleapis.com/v1beta")

# GitHub
GITHUB_API_URL = cfg("github.api_url", "https://api.github.com")
GITHUB_HOST = cfg("github.host", "github.com")
GIT_DEFAULT_BRANCH = cfg("github.default_branch", "main")
GIT_COMMIT_NAME = cfg("github.commit_name", "Project Scaffolder")
GIT_COMMIT_EMAIL = cfg("github.commit_email", "project-scaffolder@example.com")
GIT_COMMIT_MESSAGE = cfg("github.commit_message", "Initial commit from Project Scaffolder")
GIT_COMMAND_TIMEOUT = cfg("github.command_timeout", 60)

# Vercel
VERCEL_API_URL = cfg("vercel.api_url", "https://api.vercel.com")
VERCEL_FRAMEWORK = cfg("vercel.framework", "nextjs")
VERCEL_POLL_INTERVAL = cfg("vercel.poll_interval_sec", 5.0)
VERCEL_DEPLOY_TIMEOUT = cfg("vercel.deploy_timeout_sec", 300.0)

# HTTP
HTTP_TIMEOUT = cfg("http.timeout", 60.0)

# Auth
AUTH_SECRET_KEY = cfg("auth.secret_key", "")
AUTH_ALGORITHM = cfg("auth.algorithm", "HS256")
AUTH_ACCESS_TOKEN_EXPIRE_MINUTES = cfg("auth.access_token_expire_minutes", 30)
AUTH_REFRESH_TOKEN_EXPIRE_DAYS = cfg("auth.refresh_token_expire_days", 7)
AUTH_ALLOW_REGISTRATION = cfg("auth.allow_registration", True)

# Audit
AUDIT_PAGE_SIZE = cfg("audit.page_size", 50)


# ---------------------------------------------------------------------------
# Credentials (environment only, read at call time)
# ---------------------------------------------------------------------------

LLM_CREDENTIAL_ENV = {
    "anthropic": "ANTHROPIC_API_KEY",
    "openai": "OPENAI_API_KEY",
    "gemini": "GOOGLE_AI_API_KEY",
}

DEPLOY_CREDENTIAL_ENV = {
    "vercel": "VERCEL_TOKEN",
    "netlify": "NETLIFY_TOKEN",
    "github-pages": "GITHUB_TOKEN",
}

GITHUB_TOKEN_ENV = "GITHUB_TOKEN"


def get_credential(env_name: str) -> str:
    """Return the credential stored in env_name, or "" when unset."""
    return os.environ.get(env_name, "")


def default_llm_provider() -> str:
    """DEFAULT_LLM_PROVIDER env var, then llm.default_provider, then anthropic."""
    return os.environ.get("DEFAULT_LLM_PROVIDER") or LLM_DEFAULT_PROVIDER or "anthropic"


# ---------------------------------------------------------------------------
# Startup validation
# ---------------------------------------------------------------------------

def validate_config():
    """Validate critical config values. Call during app startup (not at import time).

    Raises ConfigError for fatal issues, logs warnings for non-fatal ones.
    """
    import logging
    _logger = logging.getLogger("scaffolder.config")

    # Fatal: JWT secret must be non-empty and at least 32 characters
    if not AUTH_SECRET_KEY or len(AUTH_SECRET_KEY) < 32:
        raise ConfigError(
            "FATAL: auth.secret_key is missing or too short in config.json "
            "(must be at least 32 characters)"
        )

    # Fatal: port must be valid
    if not isinstance(PORT, int) or not (1 <= PORT <= 65535):
        raise ConfigError(f"server.port must be 1-65535, got {PORT}")

    # Fatal: timeouts and intervals must be positive
    for label, val in [("llm.timeout", LLM_TIMEOUT),
                       ("github.command_timeout", GIT_COMMAND_TIMEOUT),
                       ("vercel.poll_interval_sec", VERCEL_POLL_INTERVAL),
                       ("vercel.deploy_timeout_sec", VERCEL_DEPLOY_TIMEOUT)]:
        if not isinstance(val, (int, float)) or val <= 0:
            raise ConfigError(f"{label} must be > 0, got {val}")

    # Fatal: temperature range
    if not isinstance(LLM_TEMPERATURE, (int, float)) or not (0 <= LLM_TEMPERATURE <= 2):
        raise ConfigError(f"llm.temperature must be between 0 and 2, got {LLM_TEMPERATURE}")

    # Fatal: default provider must be a known name
    provider = default_llm_provider()
    if provider not in LLM_CREDENTIAL_ENV:
        raise ConfigError(
            f"Default LLM provider must be one of {sorted(LLM_CREDENTIAL_ENV)}, got '{provider}'"
        )

    # Fatal: CORS origins must be valid URLs
    for origin in CORS_ORIGINS:
        if not isinstance(origin, str):
            raise ConfigError(f"CORS origin must be a string, got {type(origin).__name__}")
        if origin == "*":
            _logger.warning("CORS origin '*' allows all origins — not recommended for production")
        elif not origin.startswith(("http://", "https://")):
            raise ConfigError(
                f"CORS origin must start with http:// or https://, got '{origin}'"
            )

    # Warning: git binary not found
    import shutil
    if not shutil.which("git"):
        _logger.warning("'git' binary not found on PATH — repository pushes will fail")

    # Warning: no LLM credentials at all
    if not any(get_credential(env) for env in LLM_CREDENTIAL_ENV.values()):
        _logger.warning(
            "No LLM provider credentials set (%s). Code generation will fail.",
            ", ".join(LLM_CREDENTIAL_ENV.values()),
        )
    elif not get_credential(LLM_CREDENTIAL_ENV[provider]):
        _logger.warning(
            "Default LLM provider '%s' has no credential (%s is not set)",
            provider, LLM_CREDENTIAL_ENV[provider],
        )

    # Warning: deployments need a source host token
    if not get_credential(GITHUB_TOKEN_ENV):
        _logger.warning("GITHUB_TOKEN is not set. Deployments will fail at repository setup.")


class ConfigError(Exception):
    """Raised when critical configuration is invalid."""
