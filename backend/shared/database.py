import os
import logging
from functools import lru_cache
from typing import Any, Dict

from sqlalchemy.engine.url import make_url
from sqlalchemy.pool import StaticPool

logger = logging.getLogger(__name__)


@lru_cache(maxsize=None)
def get_database_url(service_name: str) -> str:
    """Build the PostgreSQL URL for a service from its prefixed environment variables."""
    svc = service_name.upper()

    # Service-specific settings win over the shared DATABASE_* fallbacks
    host = os.getenv(f"{svc}_DB_HOST", os.getenv("DATABASE_HOST", "localhost"))
    port = int(os.getenv(f"{svc}_DB_PORT", os.getenv("DATABASE_PORT", "5432")))
    user = os.getenv(f"{svc}_DB_USER", f"{service_name}_user")
    password = os.getenv(f"{svc}_DB_PASSWORD")
    name = os.getenv(f"{svc}_DB_NAME", f"{service_name}_db")
    sslmode = os.getenv(f"{svc}_DB_SSLMODE", os.getenv("DATABASE_SSLMODE", "prefer"))

    if password is None:
        logger.error("Missing password for %s; please set %s_DB_PASSWORD", service_name, svc)
        raise EnvironmentError(f"{svc}_DB_PASSWORD is required")

    url = f"postgresql://{user}:{password}@{host}:{port}/{name}?sslmode={sslmode}"
    logger.info(f"Database URL for {service_name}: postgresql://{user}@{host}:{port}/{name}")
    return url


def is_sqlite_url(database_url: str) -> bool:
    return make_url(database_url).get_backend_name() == "sqlite"


def build_engine_options(database_url: str, pool_options: Dict[str, Any]) -> Dict[str, Any]:
    """
    Engine keyword arguments for ``create_engine``.

    SQLite (local runs and tests) gets a single shared connection so an
    in-memory database survives across sessions; pool sizing only applies to
    server databases.
    """
    if is_sqlite_url(database_url):
        return {
            "poolclass": StaticPool,
            "connect_args": {"check_same_thread": False},
        }
    return dict(pool_options)
