"""Configuration management using environment variables."""

import os
from dotenv import load_dotenv

# Load environment variables from .env file
load_dotenv()

# Database configuration
DB_PATH = os.getenv("DB_PATH", "attribution.db")

# Logging configuration
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")
LOG_FILE = os.getenv("LOG_FILE", "attribution.log")

# Attribution model configuration
TIME_DECAY_HALF_LIFE_DAYS = float(os.getenv("TIME_DECAY_HALF_LIFE_DAYS", "7"))
CREDIT_TOLERANCE = float(os.getenv("CREDIT_TOLERANCE", "0.01"))
STRICT_INVARIANTS = os.getenv("STRICT_INVARIANTS", "false").lower() == "true"

# Touchpoint fetching
FETCH_TIMEOUT_SECONDS = float(os.getenv("FETCH_TIMEOUT_SECONDS", "10"))
FETCH_CONCURRENCY = int(os.getenv("FETCH_CONCURRENCY", "8"))
DEFAULT_LOOKBACK_DAYS = int(os.getenv("DEFAULT_LOOKBACK_DAYS", "90"))

# API configuration
API_HOST = os.getenv("API_HOST", "0.0.0.0")
API_PORT = int(os.getenv("API_PORT", "8000"))
CORS_ORIGINS = os.getenv("CORS_ORIGINS", "*")
SESSION_DURATION_HOURS = int(os.getenv("SESSION_DURATION_HOURS", "24"))

# Seed demo data on startup when the store is empty
SEED_DEMO_DATA = os.getenv("SEED_DEMO_DATA", "false").lower() == "true"
