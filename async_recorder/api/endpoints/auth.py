from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel
from typing import Optional
import logging
from async_recorder.api.routes import get_current_user
from async_recorder.context import AppContext, get_context
from async_recorder.db.models import User

router = APIRouter()
logger = logging.getLogger(__name__)

class RegisterRequest(BaseModel):
    name: Optional[str] = None
    api_key: str

@router.post("/register")
async def register(request: RegisterRequest, ctx: AppContext = Depends(get_context)):
    try:
        result = await ctx.recorder.register(request.name, request.api_key)
    except Exception as e:
        logger.exception(f"Registration error: {e}")
        raise HTTPException(status_code=500, detail="Could not reach VideoDB to verify the API key")

    if not result.success:
        raise HTTPException(status_code=400, detail=result.error)

    response = {
        "access_token": result.access_token,
        "name": result.user_name,
    }
    if ctx.settings.VIDEODB_API_URL:
        response["backend_base_url"] = ctx.settings.VIDEODB_API_URL
    return response

@router.post("/logout")
async def logout(ctx: AppContext = Depends(get_context)):
    result = await ctx.recorder.logout()
    return result.to_dict()

@router.post("/token")
async def generate_token(user: User = Depends(get_current_user), ctx: AppContext = Depends(get_context)):
    """Client token for the capture client, reused while still fresh."""
    try:
        return await ctx.recorder.get_session_token(user)
    except Exception as e:
        logger.exception(f"Error in token endpoint: {e}")
        raise HTTPException(status_code=500, detail="Failed to generate session token")
