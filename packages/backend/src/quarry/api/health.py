"""Health check endpoint.

Learn: Verifies the server is up and the database answers. The rate-limit
store is reported too, but it is optional: a missing or broken store
makes the status "degraded", never "unhealthy", because auth does not
depend on it.
"""

from fastapi import APIRouter, Depends, Request
from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncSession

from quarry import __version__
from quarry.db.engine import get_db

router = APIRouter()


@router.get("/health")
async def health_check(request: Request, db: AsyncSession = Depends(get_db)):
    """Check server health and dependency connectivity."""
    checks = {"server": "ok", "version": __version__}

    try:
        await db.execute(text("SELECT 1"))
        checks["database"] = "ok"
    except Exception as e:
        checks["database"] = f"error: {e}"

    store = getattr(request.app.state, "rate_limit_store", None)
    if store is None:
        checks["rate_limit_store"] = "disabled"
    else:
        try:
            await store.ping()
            checks["rate_limit_store"] = "ok"
        except Exception as e:
            checks["rate_limit_store"] = f"error: {e}"

    if checks["database"] != "ok":
        status = "unhealthy"
    elif checks["rate_limit_store"] != "ok":
        status = "degraded"
    else:
        status = "healthy"

    return {"status": status, **checks}
