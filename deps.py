import logging
from fastapi import Header, HTTPException, Request, status
from gridfs import AsyncGridFSBucket
import identity
from config import AUDIO_BUCKET
from db import db, entries_col, users_col
from journal import JournalStore
from storage import AudioStore

logger = logging.getLogger(__name__)

CREDENTIAL_ERRORS = {
    "expired": "Unauthorized: Token expired",
    "revoked": "Unauthorized: Token revoked",
    "invalid": "Unauthorized: Invalid token",
}


# Dependency to get the user id from the Authorization header
async def get_current_user(authorization: str = Header(None)):
    token = identity.parse_bearer(authorization)
    if not token:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Unauthorized: No token provided")

    try:
        return await identity.verify_id_token(token)
    except identity.InvalidCredentialError as e:
        logger.info(f"Rejected bearer token: {e.message}")
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail=CREDENTIAL_ERRORS[e.reason])
    except identity.AuthProviderError as e:
        logger.error(f"Error verifying auth token: {e.message}")
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail=CREDENTIAL_ERRORS["invalid"])


def get_search_cache(request: Request):
    return request.app.state.search_cache


def get_journal():
    return JournalStore(entries_col)


def get_audio_store():
    return AudioStore(AsyncGridFSBucket(db, bucket_name=AUDIO_BUCKET))


def get_users_col():
    return users_col
