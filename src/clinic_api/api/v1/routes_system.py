from datetime import datetime, timezone

from fastapi import APIRouter

router = APIRouter(prefix="", tags=["system"])


@router.get("/health")
async def health_check() -> dict:
    """API health endpoint."""
    return {"status": "ok", "timestamp": datetime.now(timezone.utc).isoformat()}
