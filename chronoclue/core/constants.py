"""Core constants for Chronoclue."""

# Year range covered by the puzzle inventory (inclusive)
YEAR_RANGE_START = -776
YEAR_RANGE_END = 2008

# A year with fewer clues than this is an inventory gap
MIN_EVENTS_PER_YEAR = 6

# Batch sizing
DEFAULT_TARGET_COUNT = 10
MIN_TARGET_COUNT = 1
MAX_TARGET_COUNT = 50

# Share of batch slots reserved for high-demand years
HIGH_DEMAND_SHARE = 0.8

# Critic pass thresholds
FACTUAL_MIN = 0.75
LEAK_RISK_MAX = 0.15
AMBIGUITY_MAX = 0.25
GUESSABILITY_MIN = 0.4

# leak_risk = model * LLM_LEAK_WEIGHT + validator * VALIDATOR_LEAK_WEIGHT
LLM_LEAK_WEIGHT = 0.7
VALIDATOR_LEAK_WEIGHT = 0.3

# Candidates above this blended leak_risk are fed back into the leak phrase library
LEAK_LEARNING_THRESHOLD = 0.6

# Semantic validator gates
SEMANTIC_LEAKAGE_MAX = 0.6
METADATA_QUALITY_MIN = 0.5
LEARNED_PHRASE_MAX_CHARS = 180

MAX_CLUE_WORDS = 20

# Selection tie-break tolerance
SCORE_EPSILON = 1e-4

ALLOWED_CATEGORIES = (
    "war",
    "politics",
    "science",
    "culture",
    "technology",
    "religion",
    "economy",
    "sports",
    "exploration",
    "arts",
)

# OpenRouter defaults
OPENROUTER_DEFAULT_BASE_URL = "https://openrouter.ai/api/v1/chat/completions"
DEFAULT_GENERATOR_MODEL = "google/gemini-3-pro-preview"
DEFAULT_CRITIC_MODEL = "google/gemini-3-flash-preview"
DEFAULT_FALLBACK_MODEL = "openai/gpt-5-mini"

# USD per million tokens
PRICE_INPUT_PER_MILLION = 2.0
PRICE_OUTPUT_PER_MILLION = 12.0
PRICE_REASONING_PER_MILLION = 0.0
CACHED_INPUT_RATIO = 0.1
