"""In-memory async stand-ins for the Mongo collection and the audio blob store."""

import copy
from datetime import datetime, timedelta, timezone
from types import SimpleNamespace

from bson import ObjectId

from journal import normalize_text
from storage import sign_file_link


def _matches(doc, query):
    for field, cond in query.items():
        value = doc.get(field)
        if isinstance(cond, dict):
            for op, arg in cond.items():
                if value is None:
                    return False
                if op == "$gte" and not value >= arg:
                    return False
                if op == "$lt" and not value < arg:
                    return False
        elif value != cond:
            return False
    return True


class FakeCursor:
    def __init__(self, docs):
        self._docs = docs
        self._skip = 0
        self._limit = 0

    def sort(self, key, direction=1):
        self._docs.sort(key=lambda d: d.get(key), reverse=direction < 0)
        return self

    def skip(self, n):
        self._skip = n
        return self

    def limit(self, n):
        self._limit = n
        return self

    async def to_list(self, length=None):
        docs = self._docs[self._skip:]
        if self._limit:
            docs = docs[:self._limit]
        return [copy.deepcopy(d) for d in docs]


class FakeCollection:
    def __init__(self):
        self.docs = []
        self.find_calls = 0
        self.fail_find = False
        self.indexes = []

    async def create_index(self, keys):
        self.indexes.append(keys)

    async def insert_one(self, doc):
        doc = copy.deepcopy(doc)
        doc.setdefault("_id", ObjectId())
        self.docs.append(doc)
        return SimpleNamespace(inserted_id=doc["_id"])

    async def find_one(self, query):
        for doc in self.docs:
            if _matches(doc, query):
                return copy.deepcopy(doc)
        return None

    def find(self, query):
        self.find_calls += 1
        if self.fail_find:
            raise RuntimeError("document store unavailable")
        return FakeCursor([d for d in self.docs if _matches(d, query)])

    async def count_documents(self, query):
        return sum(1 for d in self.docs if _matches(d, query))

    async def find_one_and_update(self, query, update, return_document=None):
        for doc in self.docs:
            if _matches(doc, query):
                doc.update(update.get("$set", {}))
                return copy.deepcopy(doc)
        return None

    async def find_one_and_delete(self, query):
        for i, doc in enumerate(self.docs):
            if _matches(doc, query):
                return self.docs.pop(i)
        return None

    async def update_one(self, query, update, upsert=False):
        for doc in self.docs:
            if _matches(doc, query):
                doc.update(update.get("$set", {}))
                return SimpleNamespace(matched_count=1)
        if upsert:
            doc = dict(query)
            doc.update(update.get("$setOnInsert", {}))
            doc.update(update.get("$set", {}))
            await self.insert_one(doc)
        return SimpleNamespace(matched_count=0)


class FakeGridOut:
    def __init__(self, data, metadata):
        self._chunks = [data[i:i + 4] for i in range(0, len(data), 4)]
        self.length = len(data)
        self.metadata = metadata
        self.closed = False

    async def readchunk(self):
        return self._chunks.pop(0) if self._chunks else b""

    async def close(self):
        self.closed = True


class FakeAudioStore:
    def __init__(self):
        self.files = {}
        self.fail_delete = False
        self.deleted = []
        self.opened = []

    async def upload(self, user_id, data, filename, content_type):
        file_id = str(ObjectId())
        self.files[file_id] = (data, {"userId": user_id, "contentType": content_type})
        return file_id, sign_file_link(file_id)

    async def delete(self, file_id):
        if self.fail_delete:
            raise RuntimeError("bucket unavailable")
        self.deleted.append(file_id)
        self.files.pop(file_id, None)

    async def open(self, file_id):
        if file_id not in self.files:
            return None
        data, metadata = self.files[file_id]
        grid_out = FakeGridOut(data, metadata)
        self.opened.append(grid_out)
        return grid_out


class FakeClock:
    def __init__(self, now=1000.0):
        self.now = now

    def __call__(self):
        return self.now

    def advance(self, seconds):
        self.now += seconds


def seed_entry(collection, user_id, transcription, minutes_ago=0, **extra):
    """Insert a stored entry document directly, with a fixed creation time."""
    created = datetime(2025, 1, 1, tzinfo=timezone.utc) - timedelta(minutes=minutes_ago)
    doc = {
        "_id": ObjectId(),
        "user_id": user_id,
        "title": extra.pop("title", transcription[:10]),
        "tags": extra.pop("tags", []),
        "transcription": transcription,
        "search_text": normalize_text(transcription),
        "ai_response": "reflection",
        "audio_url": "http://test/audio",
        "audio_file_id": extra.pop("audio_file_id", None),
        "created_at": created,
        "updated_at": created,
    }
    doc.update(extra)
    collection.docs.append(doc)
    return str(doc["_id"])


class FakeResponse:
    def __init__(self, status, body):
        self.status = status
        self._body = body

    async def json(self, content_type=None):
        if isinstance(self._body, Exception):
            raise self._body
        return self._body

    async def __aenter__(self):
        return self

    async def __aexit__(self, *exc):
        return False


class FakeSession:
    """
    Stands in for aiohttp.ClientSession. Each post() answers with the next
    queued (status, body) pair, or raises it when it is an exception.
    """

    def __init__(self, replies):
        self.replies = list(replies)
        self.requests = []

    def __call__(self, *args, **kwargs):
        return self

    def post(self, url, **kwargs):
        self.requests.append((url, kwargs))
        reply = self.replies.pop(0)
        if isinstance(reply, BaseException):
            raise reply
        return FakeResponse(*reply)

    async def __aenter__(self):
        return self

    async def __aexit__(self, *exc):
        return False
