from pymongo import AsyncMongoClient
from config import MONGO_URI, MONGO_DB_NAME


# MongoDB setup
mongo = AsyncMongoClient(MONGO_URI, connect=False)
db = mongo[MONGO_DB_NAME]
entries_col = db["audio_entries"]
users_col = db["users"]


''' Indexes created at startup by JournalStore.ensure_indexes() '''
'''
audio_entries:
  { "user_id": 1, "search_text": 1 }   prefix search on transcriptions
  { "user_id": 1, "created_at": -1 }   newest-first listing
audio.files (GridFS):
  default GridFS indexes
'''
