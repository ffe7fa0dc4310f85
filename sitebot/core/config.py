import os

from dotenv import load_dotenv

# Carrega o .env da raiz do projeto
load_dotenv()


def _env_flag(name: str, default: str = "0") -> bool:
    return os.getenv(name, default).strip().lower() in {"1", "true", "yes", "on"}


def _env_float(name: str, default: float) -> float:
    raw = os.getenv(name, "").strip()
    if not raw:
        return default
    try:
        return float(raw)
    except ValueError:
        return default


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name, "").strip()
    if not raw:
        return default
    try:
        return int(raw)
    except ValueError:
        return default


DATABASE_URL = os.getenv("DATABASE_URL", "sqlite:///./sitebot.db")
ENV = os.getenv("ENV", "dev")
ENV_NORMALIZED = ENV.lower()
IS_DEV = ENV_NORMALIZED in {"dev", "development", "local"}
IS_PROD = ENV_NORMALIZED in {"prod", "production"}
BASE_URL = os.getenv("BASE_URL", "http://localhost:8000").strip().rstrip("/")

# Token compartilhado para endpoints internos (cron de limpeza, disparo manual de builds)
INTERNAL_API_TOKEN = os.getenv("INTERNAL_API_TOKEN", "").strip()

# Seleção de provedores: "mock" em dev, reais em produção
AI_PROVIDER = os.getenv("AI_PROVIDER", "mock").strip().lower()
HOSTING_PROVIDER = os.getenv("HOSTING_PROVIDER", "mock").strip().lower()
SCREENSHOT_PROVIDER = os.getenv("SCREENSHOT_PROVIDER", "mock").strip().lower()
WHATSAPP_PROVIDER = os.getenv("WHATSAPP_PROVIDER", "mock").strip().lower()

# WhatsApp Cloud
META_WA_ACCESS_TOKEN = os.getenv("META_WA_ACCESS_TOKEN", "")
META_WA_PHONE_NUMBER_ID = os.getenv("META_WA_PHONE_NUMBER_ID", "")
META_WA_VERIFY_TOKEN = os.getenv("META_WA_VERIFY_TOKEN", "")
META_API_VERSION = os.getenv("META_API_VERSION", "v22.0")
# Quando definidos, o token é obtido via client credentials em vez do token fixo
META_WA_TOKEN_URL = os.getenv("META_WA_TOKEN_URL", "").strip()
META_WA_CLIENT_ID = os.getenv("META_WA_CLIENT_ID", "").strip()
META_WA_CLIENT_SECRET = os.getenv("META_WA_CLIENT_SECRET", "").strip()
META_WA_TOKEN_SAFETY_MARGIN_SECONDS = _env_float("META_WA_TOKEN_SAFETY_MARGIN_SECONDS", 60.0)

# Geração (OpenRouter)
OPENROUTER_API_KEY = os.getenv("OPENROUTER_API_KEY", "")
OPENROUTER_API_URL = os.getenv("OPENROUTER_API_URL", "https://openrouter.ai/api/v1/chat/completions")
OPENROUTER_MODEL = os.getenv("OPENROUTER_MODEL", "deepseek/deepseek-chat-v3-0324:free")

# Hospedagem (Vercel)
VERCEL_TOKEN = os.getenv("VERCEL_TOKEN", "")
VERCEL_TEAM_ID = os.getenv("VERCEL_TEAM_ID", "").strip()
VERCEL_API_URL = os.getenv("VERCEL_API_URL", "https://api.vercel.com").rstrip("/")
VERCEL_POLL_INTERVAL_SECONDS = _env_float("VERCEL_POLL_INTERVAL_SECONDS", 5.0)

# Screenshots
SCREENSHOT_API_URL = os.getenv("SCREENSHOT_API_URL", "").strip()
SCREENSHOT_API_KEY = os.getenv("SCREENSHOT_API_KEY", "").strip()
SCREENSHOT_TIMEOUT_SECONDS = _env_float("SCREENSHOT_TIMEOUT_SECONDS", 30.0)

# Política de build (segundos)
GENERATION_TIMEOUT_SIMPLE_SECONDS = _env_float("GENERATION_TIMEOUT_SIMPLE_SECONDS", 180.0)
GENERATION_TIMEOUT_COMPLEX_SECONDS = _env_float("GENERATION_TIMEOUT_COMPLEX_SECONDS", 600.0)
DEPLOY_TIMEOUT_SIMPLE_SECONDS = _env_float("DEPLOY_TIMEOUT_SIMPLE_SECONDS", 180.0)
DEPLOY_TIMEOUT_COMPLEX_SECONDS = _env_float("DEPLOY_TIMEOUT_COMPLEX_SECONDS", 480.0)
BUILD_MAX_RETRIES = _env_int("BUILD_MAX_RETRIES", 3)
BUILD_RETRY_DELAY_SECONDS = _env_float("BUILD_RETRY_DELAY_SECONDS", 30.0)
BUILD_RETRY_MAX_DELAY_SECONDS = _env_float("BUILD_RETRY_MAX_DELAY_SECONDS", 120.0)
READINESS_PROBE_ATTEMPTS = _env_int("READINESS_PROBE_ATTEMPTS", 5)
READINESS_PROBE_DELAY_SECONDS = _env_float("READINESS_PROBE_DELAY_SECONDS", 3.0)
READINESS_PROBE_TIMEOUT_SECONDS = _env_float("READINESS_PROBE_TIMEOUT_SECONDS", 10.0)

# Thumbnail de um mesmo URL é reaproveitado enquanto for mais novo que isso
THUMBNAIL_MAX_AGE_SECONDS = _env_int("THUMBNAIL_MAX_AGE_SECONDS", 24 * 60 * 60)

# Janitor: builds concluídos/falhos mais velhos que isso são expirados
BUILD_EXPIRE_AFTER_SECONDS = _env_int("BUILD_EXPIRE_AFTER_SECONDS", 60 * 60)

AUTO_CREATE_TABLES = _env_flag("AUTO_CREATE_TABLES", "1" if IS_DEV else "0")
