"""Global pytest configuration."""

import os

# Environment for the module-level app, set before any backend imports
os.environ.setdefault("ENVIRONMENT", "test")
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///:memory:")
os.environ.setdefault("JWT_SECRET", "test-secret-key-with-enough-length-for-hs256")
