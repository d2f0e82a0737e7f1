import logging
from datetime import datetime, timezone
from fastapi import APIRouter, Depends, HTTPException, Request, status
from fastapi.responses import JSONResponse
import identity
from deps import get_users_col

router = APIRouter(prefix="/api/auth", tags=["auth"])

logger = logging.getLogger(__name__)


async def _read_credentials(request: Request):
    try:
        data = await request.json()
    except ValueError:
        data = None
    if not isinstance(data, dict):
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Invalid JSON body.")

    email = str(data.get("email") or "").strip()
    password = str(data.get("password") or "")
    if not email or not password:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Email and password are required.")
    return email, password


@router.post("/signup")
async def signup(request: Request, users_col=Depends(get_users_col)):
    email, password = await _read_credentials(request)
    try:
        session = await identity.sign_up(email, password)
    except identity.AuthProviderError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=e.message)

    try:
        await users_col.update_one(
            {"uid": session["uid"]},
            {"$setOnInsert": {"uid": session["uid"], "email": email, "created_at": datetime.now(timezone.utc)}},
            upsert=True,
        )
    except Exception as e:
        # The account exists at the provider; the profile row can be recreated later
        logger.error(f"Failed to record user {session['uid']}: {e}")

    return JSONResponse(status_code=status.HTTP_201_CREATED, content=session)


@router.post("/login")
async def login(request: Request):
    email, password = await _read_credentials(request)
    try:
        return await identity.sign_in(email, password)
    except identity.AuthProviderError as e:
        logger.info(f"Login failed: {e.message}")
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail=e.message)
