"""
Backend configuration
"""

import os

# API settings
API_HOST = os.getenv("API_HOST", "0.0.0.0")
API_PORT = int(os.getenv("API_PORT", "8000"))

# CORS origins (frontend URL)
CORS_ORIGINS = os.getenv(
    "CORS_ORIGINS", "http://localhost:5173,http://127.0.0.1:5173"
).split(",")

LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()

# Default split ratios
DEFAULT_TRAIN_RATIO = float(os.getenv("DEFAULT_TRAIN_RATIO", "0.8"))
DEFAULT_VALIDATION_RATIO = float(os.getenv("DEFAULT_VALIDATION_RATIO", "0.2"))
DEFAULT_TEST_RATIO = float(os.getenv("DEFAULT_TEST_RATIO", "0.0"))

# Creator written into exported document headers
EXPORT_CREATOR = os.getenv("EXPORT_CREATOR", "LabelBench")
