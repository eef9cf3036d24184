"""Health check endpoints."""

from subsync.api.router import TrailingSlashRouter

router = TrailingSlashRouter()


@router.get("")
async def health_check() -> dict[str, str]:
    """Liveness probe.

    Returns:
    --------
        dict: ``{"status": "healthy"}`` while the process serves requests.
    """
    return {"status": "healthy"}
