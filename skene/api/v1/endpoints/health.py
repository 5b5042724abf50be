from fastapi import APIRouter

from skene.config import VERSION

router = APIRouter()


@router.get("/health")
async def health_check():
    return {"status": "healthy", "service": "skene-orchestrator", "version": VERSION}
