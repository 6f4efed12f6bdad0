# health/router.py
from fastapi import APIRouter

from core.deps import CredentialManagerDep
from providers.errors import NoClientAvailable

router = APIRouter(tags=["health"])


@router.get("/health")
def health():
    # Keep this super simple and always unauthenticated
    return {"ok": True}


@router.get("/health/storage")
async def health_storage(manager: CredentialManagerDep):
    """
    Verifies:
      - a MinIO client can be produced (static keys, or IAM role on EC2)
      - which credential mode is active and when the credentials expire
    """
    try:
        await manager.acquire_client()
    except NoClientAvailable as e:
        return {
            "ok": False,
            "clientReady": False,
            "error": str(e),
            **manager.describe(),
        }

    return {
        "ok": True,
        "clientReady": True,
        **manager.describe(),
    }
