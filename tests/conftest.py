import os

# The app module builds its engine at import time; tests swap in their own.
os.environ.setdefault("DATABASE_URL", "sqlite://")
os.environ.setdefault("LOCK_BACKEND", "memory")
