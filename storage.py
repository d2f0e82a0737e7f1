import re
import hmac
import time
import hashlib
import logging
from urllib.parse import urlencode
from bson import ObjectId
from bson.errors import InvalidId
from gridfs.errors import NoFile
from config import MY_DOMAIN, SIGNING_SECRET, SIGNED_URL_TTL

logger = logging.getLogger(__name__)


def _signature(file_id, expires):
    message = f"{file_id}:{expires}".encode()
    return hmac.new(SIGNING_SECRET.encode(), message, hashlib.sha256).hexdigest()


def sign_file_link(file_id, ttl=SIGNED_URL_TTL, now=None):
    """Build a download URL for file_id that stays valid for `ttl` seconds."""
    now = int(time.time()) if now is None else int(now)
    expires = now + ttl
    query = urlencode({"expires": expires, "signature": _signature(file_id, expires)})
    return f"{MY_DOMAIN}/api/audio/files/{file_id}?{query}"


def verify_file_link(file_id, expires, signature, now=None):
    try:
        expires = int(expires)
    except (ValueError, TypeError):
        return False
    now = time.time() if now is None else now
    if expires < now:
        return False
    return hmac.compare_digest(_signature(file_id, expires), signature or "")


def safe_filename(filename):
    name = re.sub(r"[^A-Za-z0-9._-]+", "_", filename or "").strip("._")
    return name[:100] or "recording"


class AudioStore:
    """Audio blobs kept in a GridFS bucket, addressed by file id."""

    def __init__(self, bucket):
        self.bucket = bucket

    async def upload(self, user_id, data, filename, content_type):
        path = f"audio/{user_id}/{int(time.time() * 1000)}-{safe_filename(filename)}"
        file_id = await self.bucket.upload_from_stream(
            path,
            data,
            metadata={"userId": user_id, "contentType": content_type},
        )
        file_id = str(file_id)
        logger.info(f"Stored audio {path} as {file_id}")
        return file_id, sign_file_link(file_id)

    async def delete(self, file_id):
        await self.bucket.delete(ObjectId(file_id))

    async def open(self, file_id):
        """Return a download stream, or None if the file does not exist."""
        try:
            return await self.bucket.open_download_stream(ObjectId(file_id))
        except (InvalidId, TypeError, NoFile):
            return None
