"""Health check endpoint.

Learn: Liveness plus a dependency report. Postgres is required; Redis
only backs the cache, so its absence doesn't make the service degraded.
The chat numbers come straight from the in-process registry.
"""

from fastapi import APIRouter, Depends
from sqlalchemy import text

from gradwork import __version__
from gradwork.cache import get_cache
from gradwork.chat.registry import ConnectionRegistry, get_registry
from gradwork.db.engine import engine

router = APIRouter()


@router.get("/health")
async def health_check(registry: ConnectionRegistry = Depends(get_registry)):
    """Check server health and dependency connectivity."""
    checks = {"server": "ok", "version": __version__}

    try:
        async with engine.connect() as conn:
            await conn.execute(text("SELECT 1"))
        checks["postgres"] = "ok"
    except Exception as e:
        checks["postgres"] = f"error: {e}"

    r = get_cache()
    if r is None:
        checks["redis"] = "disabled"
    else:
        try:
            await r.ping()
            checks["redis"] = "ok"
        except Exception as e:
            checks["redis"] = f"error: {e}"

    status = "healthy" if checks["postgres"] == "ok" else "degraded"
    return {
        "status": status,
        **checks,
        "chat_rooms": registry.room_count,
    }
