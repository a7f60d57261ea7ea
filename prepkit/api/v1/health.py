from fastapi import APIRouter

from prepkit.services.llm import llm_enabled

router = APIRouter()


@router.get("/health", summary="Health Check", description="Check the health status of the application.")
async def health_check():
    return {"status": "healthy", "llm_configured": llm_enabled()}
