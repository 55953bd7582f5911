"""Global pytest configuration."""

import os

# Set before any imports; the module-level app builds its settings at import time
os.environ.setdefault("GEMINI_API_KEY", "test-key")
os.environ.setdefault("ENVIRONMENT", "test")
os.environ.pop("REDIS_URL", None)
