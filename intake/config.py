import os

from dotenv import load_dotenv

load_dotenv()

OPENAI_API_KEY = os.getenv("OPENAI_API_KEY", "")
ANTHROPIC_API_KEY = os.getenv("ANTHROPIC_API_KEY", "")

# LLM configuration
LLM_PROVIDER = os.getenv("LLM_PROVIDER", "auto")
LLM_DEFAULT_TIER = os.getenv("LLM_DEFAULT_TIER", "standard")
LLM_MODEL_FAST = os.getenv("LLM_MODEL_FAST", "")
LLM_MODEL_STANDARD = os.getenv("LLM_MODEL_STANDARD", "")
LLM_MODEL_HIGH = os.getenv("LLM_MODEL_HIGH", "")
LLM_MAX_TOKENS = int(os.getenv("LLM_MAX_TOKENS", "1024"))
LLM_MAX_FUNCTION_ROUNDS = int(os.getenv("LLM_MAX_FUNCTION_ROUNDS", "4"))

# Procedure filtering through the assistant (falls back to stopwords only)
LLM_FILTERING = os.getenv("LLM_FILTERING", "true").lower() in ("1", "true", "yes", "on")
LLM_FILTER_TIMEOUT = float(os.getenv("LLM_FILTER_TIMEOUT", "60"))

# FHIR R4 clinical record source
FHIR_BASE_URL = os.getenv("FHIR_BASE_URL", "https://launch.smarthealthit.org/v/r4/fhir")
FHIR_TIMEOUT = float(os.getenv("FHIR_TIMEOUT", "45"))
# Servers a session may be seeded from (comma-separated); the default server is always allowed
FHIR_SERVERS = [FHIR_BASE_URL.rstrip("/")] + [
    url.strip().rstrip("/") for url in os.getenv("FHIR_SERVERS", "").split(",") if url.strip()
]

# Seed new sessions with the bundled synthetic patient
USE_TEST_PATIENT = os.getenv("USE_TEST_PATIENT", "false").lower() in ("1", "true", "yes", "on")
