import asyncio
import logging
import aiohttp
from config import FIREBASE_API_KEY

logger = logging.getLogger(__name__)

IDENTITY_URL = 'https://identitytoolkit.googleapis.com/v1/accounts'
REQUEST_TIMEOUT = aiohttp.ClientTimeout(total=15)

EXPIRED_CODES = {"TOKEN_EXPIRED"}
REVOKED_CODES = {"USER_DISABLED", "USER_NOT_FOUND", "CREDENTIAL_TOO_OLD_LOGIN_AGAIN"}


class AuthProviderError(Exception):
    """The identity provider rejected the request."""

    def __init__(self, message, status=None):
        super().__init__(message)
        self.message = message
        self.status = status


class InvalidCredentialError(AuthProviderError):
    """A bearer token was invalid, expired or revoked. `reason` says which."""

    def __init__(self, reason, message=""):
        super().__init__(message or reason)
        self.reason = reason


def parse_bearer(authorization):
    """Return the token from an `Authorization: Bearer <token>` header, or None."""
    if not authorization:
        return None
    parts = authorization.split()
    if len(parts) != 2 or parts[0].lower() != "bearer":
        return None
    return parts[1]


def credential_reason(code):
    code = (code or "").split(":")[0].strip()
    if code in EXPIRED_CODES:
        return "expired"
    if code in REVOKED_CODES:
        return "revoked"
    return "invalid"


def error_message(data, default="UNKNOWN_ERROR"):
    """Read `error.message` from a provider error body of any shape."""
    error = data.get("error") if isinstance(data, dict) else None
    if isinstance(error, dict):
        return error.get("message") or default
    if isinstance(error, str):
        return error
    return default


async def _call(endpoint, payload):
    if not FIREBASE_API_KEY:
        raise AuthProviderError("FIREBASE_API_KEY is not configured")
    url = f"{IDENTITY_URL}:{endpoint}"
    try:
        async with aiohttp.ClientSession(timeout=REQUEST_TIMEOUT) as session:
            async with session.post(url, params={"key": FIREBASE_API_KEY}, json=payload) as resp:
                data = await resp.json(content_type=None)
                if resp.status != 200:
                    message = error_message(data)
                    raise AuthProviderError(message, status=resp.status)
                if not isinstance(data, dict):
                    raise AuthProviderError("Unexpected identity provider response", status=resp.status)
                return data
    except (aiohttp.ClientError, asyncio.TimeoutError, ValueError) as e:
        logger.error(f"Identity provider request {endpoint} failed: {e}")
        raise AuthProviderError("Identity provider unavailable") from e


async def verify_id_token(id_token):
    """
    Resolve an ID token to the stable user id.
    Raises InvalidCredentialError when the token is not accepted.
    """
    try:
        data = await _call("lookup", {"idToken": id_token})
    except AuthProviderError as e:
        if e.status is None:
            raise
        raise InvalidCredentialError(credential_reason(e.message), e.message) from e

    users = data.get("users") or []
    if not users or not isinstance(users[0], dict) or not users[0].get("localId"):
        raise InvalidCredentialError("invalid", "No user for token")
    if users[0].get("disabled"):
        raise InvalidCredentialError("revoked", "User disabled")
    return users[0]["localId"]


def _session_payload(data):
    return {
        "uid": data.get("localId"),
        "email": data.get("email"),
        "idToken": data.get("idToken"),
        "refreshToken": data.get("refreshToken"),
        "expiresIn": data.get("expiresIn"),
    }


async def sign_up(email, password):
    data = await _call("signUp", {"email": email, "password": password, "returnSecureToken": True})
    logger.info(f"Created account {data.get('localId')}")
    return _session_payload(data)


async def sign_in(email, password):
    data = await _call("signInWithPassword", {"email": email, "password": password, "returnSecureToken": True})
    return _session_payload(data)
