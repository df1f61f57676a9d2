import tempfile

from .base import *  # noqa: F401, F403
from .base import env

# -----------------------------------------------------------------------------
# Local development: docker-compose services named db and redis
# -----------------------------------------------------------------------------
DEBUG = True
ALLOWED_HOSTS = env.list("ALLOWED_HOSTS", default=["localhost", "127.0.0.1", "0.0.0.0"])

DATABASES = {
    "default": env.db("DATABASE_URL", default="postgres://haggle:haggle@db:5432/haggle"),
}

# The web client runs on its own dev server
CORS_ALLOWED_ORIGINS = env.list(
    "CORS_ALLOWED_ORIGINS", default=["http://localhost:5173", "http://127.0.0.1:5173"]
)
CORS_ALLOW_CREDENTIALS = True

# -----------------------------------------------------------------------------
# Redis: db 0 broker, db 1 cache (throttles, chat guard windows), db 2 channels
# -----------------------------------------------------------------------------
REDIS_HOST = env.get("REDIS_HOST", default="redis")

CACHES = {
    "default": {
        "BACKEND": "django_redis.cache.RedisCache",
        "LOCATION": env.get("REDIS_URL", default=f"redis://{REDIS_HOST}:6379/1"),
        "OPTIONS": {"CLIENT_CLASS": "django_redis.client.DefaultClient"},
        "KEY_PREFIX": "haggle-dev",
    },
}

CHANNEL_LAYERS["default"]["CONFIG"]["hosts"] = [  # noqa: F405
    env.get("CHANNEL_REDIS_URL", default=f"redis://{REDIS_HOST}:6379/2")
]

CELERY_BROKER_URL = env.get("CELERY_BROKER_URL", default=f"redis://{REDIS_HOST}:6379/0")
CELERY_RESULT_BACKEND = env.get("CELERY_RESULT_BACKEND", default=f"redis://{REDIS_HOST}:6379/0")
CELERY_WORKER_PREFETCH_MULTIPLIER = 1

# Browsable API next to the JSON renderer
REST_FRAMEWORK["DEFAULT_RENDERER_CLASSES"] += (  # noqa: F405
    "rest_framework.renderers.BrowsableAPIRenderer",
)

STATIC_ROOT = tempfile.mkdtemp()
