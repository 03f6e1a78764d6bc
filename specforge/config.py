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

# Narrative generation (executive narrative on top of the pipeline output)
NARRATIVE_ENABLED = os.getenv("NARRATIVE_ENABLED", "true").lower() in ("1", "true", "yes", "on")
NARRATIVE_TIMEOUT_SECONDS = float(os.getenv("NARRATIVE_TIMEOUT_SECONDS", "20"))

DATABASE_PATH = os.getenv("DATABASE_PATH", "specforge.db")

DATABASE_URL = os.getenv("DATABASE_URL", "")
DATABASE_MAX_CONNECTIONS = int(os.getenv("DATABASE_MAX_CONNECTIONS", "5"))

# Assessment cache tiers (entry counts)
ASSESSMENT_CACHE_L1_SIZE = int(os.getenv("ASSESSMENT_CACHE_L1_SIZE", "100"))
ASSESSMENT_CACHE_L2_SIZE = int(os.getenv("ASSESSMENT_CACHE_L2_SIZE", "500"))
ASSESSMENT_CACHE_L3_SIZE = int(os.getenv("ASSESSMENT_CACHE_L3_SIZE", "2000"))
CACHE_RECENCY_HALF_LIFE_SECONDS = float(os.getenv("CACHE_RECENCY_HALF_LIFE_SECONDS", "3600"))

# Feasibility below this triggers the single refinement round
REFINEMENT_FEASIBILITY_THRESHOLD = float(os.getenv("REFINEMENT_FEASIBILITY_THRESHOLD", "0.8"))

# GCP (optional)
GCP_PROJECT_ID = os.getenv("GCP_PROJECT_ID", "")
GCP_PUBSUB_TOPIC = os.getenv("GCP_PUBSUB_TOPIC", "")
GCP_PUBSUB_SUBSCRIPTION_PREFIX = os.getenv("GCP_PUBSUB_SUBSCRIPTION_PREFIX", "specforge-events")
