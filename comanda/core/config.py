import os
from dotenv import load_dotenv

# Carrega o .env da raiz do projeto
load_dotenv()


def _env_bool(name: str, default: str = "0") -> bool:
    return os.getenv(name, default).strip().lower() in {"1", "true", "yes", "on"}


DATABASE_URL = os.getenv("DATABASE_URL", "sqlite:///./comanda.db")
ENV = os.getenv("ENV", "dev")
ENV_NORMALIZED = ENV.lower()
IS_DEV = ENV_NORMALIZED in {"dev", "development", "local"}
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()

# Em dev o schema é criado no startup; em prod usar alembic
AUTO_CREATE_SCHEMA = _env_bool("AUTO_CREATE_SCHEMA", "1" if IS_DEV else "0")

# Provedor de IA
AGENT_PROVIDER = os.getenv("AGENT_PROVIDER", "mock").strip().lower()
OPENAI_API_KEY = os.getenv("OPENAI_API_KEY", "")
OPENAI_BASE_URL = os.getenv("OPENAI_BASE_URL", "https://api.openai.com/v1").rstrip("/")
OPENAI_MODEL = os.getenv("OPENAI_MODEL", "gpt-4o-mini")
AGENT_PROVIDER_TIMEOUT_SECONDS = float(os.getenv("AGENT_PROVIDER_TIMEOUT_SECONDS", "25"))
AGENT_MAX_LOOKUP_ROUNDS = int(os.getenv("AGENT_MAX_LOOKUP_ROUNDS", "2"))

# Contexto / RAG
AGENT_HISTORY_LIMIT = int(os.getenv("AGENT_HISTORY_LIMIT", "10"))
LAST_SHOWN_LIMIT = int(os.getenv("LAST_SHOWN_LIMIT", "10"))
MENU_SEARCH_LIMIT = int(os.getenv("MENU_SEARCH_LIMIT", "5"))
RAG_MENU_MAX_CHARS = int(os.getenv("RAG_MENU_MAX_CHARS", "1500"))
RAG_CUSTOMER_MAX_CHARS = int(os.getenv("RAG_CUSTOMER_MAX_CHARS", "300"))

# Concorrência otimista no conversation_state
STATE_WRITE_RETRIES = int(os.getenv("STATE_WRITE_RETRIES", "2"))
