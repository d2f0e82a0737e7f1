import io
import re
import json
import logging
from datetime import datetime, timezone
from bson import ObjectId
from bson.errors import InvalidId
from pymongo import ASCENDING, DESCENDING, ReturnDocument
from mutagen import File as MutagenFile, MutagenError
import gemini
from config import MAX_QUERY_LENGTH, MAX_TAGS, PAGE_SIZE, SEARCH_RESULT_LIMIT

logger = logging.getLogger(__name__)

# Upper bound for prefix range queries on search_text
PREFIX_END = "\uffff"


# =========================
# Text helpers
# =========================

def remove_surrogates(text):
    return ''.join(c for c in text if not (0xD800 <= ord(c) <= 0xDFFF))


def normalize_text(text):
    """Lowercase and collapse whitespace so transcriptions and queries compare alike."""
    return re.sub(r"\s+", " ", remove_surrogates(text or "")).strip().lower()


def normalize_query(query):
    """Normalize a search query: trimmed, lowercased, single-spaced, length-capped."""
    return normalize_text(query)[:MAX_QUERY_LENGTH].strip()


def parse_tags(raw):
    """
    Accept tags as a list, a JSON array string or a comma separated string.
    Returns trimmed, de-duplicated tags in their original order.
    """
    if raw is None:
        return []
    if isinstance(raw, str):
        raw = raw.strip()
        if not raw:
            return []
        try:
            parsed = json.loads(raw)
        except ValueError:
            parsed = raw.split(",")
        raw = parsed
    if not isinstance(raw, (list, tuple)):
        raw = [raw]

    tags = []
    for tag in raw:
        if isinstance(tag, bool) or not isinstance(tag, (str, int, float)):
            continue
        tag = str(tag).strip()[:50].strip()
        if tag and tag not in tags:
            tags.append(tag)
    return tags[:MAX_TAGS]


def audio_duration(data):
    """Best-effort clip length in seconds, None when mutagen can't read it."""
    try:
        audio = MutagenFile(io.BytesIO(data))
    except (MutagenError, ValueError) as e:
        logger.debug(f"Could not read audio metadata: {e}")
        return None
    if audio is None or not getattr(audio, "info", None):
        return None
    length = getattr(audio.info, "length", None)
    return round(length, 2) if length else None


def _iso(value):
    if isinstance(value, datetime):
        if value.tzinfo is None:
            value = value.replace(tzinfo=timezone.utc)
        return value.isoformat()
    return value


def serialize_entry(doc):
    return {
        "entryId": str(doc["_id"]),
        "userId": doc.get("user_id"),
        "title": doc.get("title", ""),
        "tags": doc.get("tags", []),
        "audioUrl": doc.get("audio_url"),
        "mimeType": doc.get("mime_type"),
        "durationSeconds": doc.get("duration_seconds"),
        "transcription": doc.get("transcription", ""),
        "aiResponse": doc.get("ai_response", ""),
        "createdAt": _iso(doc.get("created_at")),
        "updatedAt": _iso(doc.get("updated_at")),
    }


def _object_id(entry_id):
    try:
        return ObjectId(entry_id)
    except (InvalidId, TypeError):
        return None


# =========================
# Entry persistence
# =========================

class JournalStore:
    """Audio journal entries in one collection, every query scoped by user_id."""

    def __init__(self, collection):
        self.collection = collection

    async def ensure_indexes(self):
        await self.collection.create_index([("user_id", ASCENDING), ("search_text", ASCENDING)])
        await self.collection.create_index([("user_id", ASCENDING), ("created_at", DESCENDING)])

    async def add_entry(self, user_id, fields):
        now = datetime.now(timezone.utc)
        doc = dict(fields)
        doc.update({
            "user_id": user_id,
            "search_text": normalize_text(doc.get("transcription", "")),
            "created_at": now,
            "updated_at": now,
        })
        result = await self.collection.insert_one(doc)
        doc["_id"] = result.inserted_id
        return serialize_entry(doc)

    async def get_entry(self, user_id, entry_id):
        oid = _object_id(entry_id)
        if oid is None:
            return None
        doc = await self.collection.find_one({"_id": oid, "user_id": user_id})
        return serialize_entry(doc) if doc else None

    async def list_entries(self, user_id, page=1, page_size=PAGE_SIZE):
        page = max(page, 1)
        skip = (page - 1) * page_size
        query = {"user_id": user_id}
        cursor = self.collection.find(query).sort("created_at", DESCENDING).skip(skip).limit(page_size)
        docs = await cursor.to_list(length=None)
        total = await self.collection.count_documents(query)
        return [serialize_entry(doc) for doc in docs], total

    async def search_entries(self, user_id, query, limit=SEARCH_RESULT_LIMIT):
        """Entries whose normalized transcription starts with `query`, newest first."""
        search = {
            "user_id": user_id,
            "search_text": {"$gte": query, "$lt": query + PREFIX_END},
        }
        cursor = self.collection.find(search).sort("created_at", DESCENDING).limit(limit)
        docs = await cursor.to_list(length=None)
        return [serialize_entry(doc) for doc in docs]

    async def update_entry(self, user_id, entry_id, title=None, tags=None):
        oid = _object_id(entry_id)
        if oid is None:
            return None
        changes = {"updated_at": datetime.now(timezone.utc)}
        if title is not None:
            changes["title"] = title
        if tags is not None:
            changes["tags"] = tags
        doc = await self.collection.find_one_and_update(
            {"_id": oid, "user_id": user_id},
            {"$set": changes},
            return_document=ReturnDocument.AFTER,
        )
        return serialize_entry(doc) if doc else None

    async def delete_entry(self, user_id, entry_id):
        """Delete and return the entry (with its audio_file_id), or None."""
        oid = _object_id(entry_id)
        if oid is None:
            return None
        doc = await self.collection.find_one_and_delete({"_id": oid, "user_id": user_id})
        if not doc:
            return None
        entry = serialize_entry(doc)
        entry["audioFileId"] = doc.get("audio_file_id")
        return entry


# =========================
# Upload pipeline
# =========================

async def create_entry(journal, audio_store, user_id, data, filename, content_type, title="", tags=None):
    """
    Store the audio, transcribe it, ask the therapist model for a reflection,
    and persist the resulting entry. Raises gemini.GeminiError if transcription
    fails; the stored audio is removed whenever no entry ends up referencing it.
    """
    file_id, audio_url = await audio_store.upload(user_id, data, filename, content_type)

    try:
        transcription = await gemini.transcribe_audio(data, content_type)
        ai_response = await gemini.get_therapist_response(transcription)
        entry = await journal.add_entry(user_id, {
            "title": title or f"Entry {datetime.now(timezone.utc):%Y-%m-%d %H:%M}",
            "tags": tags or [],
            "audio_file_id": file_id,
            "audio_url": audio_url,
            "mime_type": content_type,
            "duration_seconds": audio_duration(data),
            "transcription": transcription,
            "ai_response": ai_response,
        })
    except Exception:
        try:
            await audio_store.delete(file_id)
        except Exception as e:
            logger.error(f"Failed to remove orphaned audio {file_id}: {e}")
        raise

    logger.info(f"Created entry {entry['entryId']} for user {user_id}")
    return entry
