import os
import logging
import secrets
from dotenv import load_dotenv
from os import environ
from requests import RequestException, get as rget

# Logger setup
LOG_FILE = environ.get("LOG_FILE", "journal_log.txt")
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    handlers=[
        logging.FileHandler(LOG_FILE, encoding="utf-8"),
        logging.StreamHandler()
    ]
)

logger = logging.getLogger("audio_journal")

# Suppress driver and client chatter except for warnings
logging.getLogger("pymongo").setLevel(logging.WARNING)
logging.getLogger("aiohttp.access").setLevel(logging.WARNING)

CONFIG_FILE_URL = environ.get('CONFIG_FILE_URL', '')
if CONFIG_FILE_URL:
    try:
        res = rget(CONFIG_FILE_URL, timeout=30)
        if res.status_code == 200:
            with open('config.env', 'wb+') as f:
                f.write(res.content)
        else:
            logger.error(f"Failed to download config.env {res.status_code}")
    except RequestException as e:
        logger.error(f"CONFIG_FILE_URL: {e}")

load_dotenv('config.env', override=True)

# SERVER
PORT = int(os.getenv('PORT', 5000))
MY_DOMAIN = os.getenv('MY_DOMAIN', f'http://localhost:{PORT}').rstrip('/')
CF_DOMAIN = os.getenv('CF_DOMAIN', 'http://localhost:5173')

# DOCUMENT + BLOB STORE
MONGO_URI = os.getenv("MONGO_URI", "mongodb://localhost:27017")
MONGO_DB_NAME = os.getenv("MONGO_DB_NAME", "audio_journal")
AUDIO_BUCKET = os.getenv("AUDIO_BUCKET", "audio")

# GENERATIVE AI
GEMINI_API_KEY = os.getenv('GEMINI_API_KEY', '')
GEMINI_MODEL = os.getenv('GEMINI_MODEL', 'gemini-2.0-flash')
GEMINI_TIMEOUT = int(os.getenv('GEMINI_TIMEOUT', 60))

# IDENTITY
FIREBASE_API_KEY = os.getenv('FIREBASE_API_KEY', '')

# SIGNED AUDIO LINKS
SIGNING_SECRET = os.getenv('SIGNING_SECRET', '')
if not SIGNING_SECRET:
    # Per-process key: audio links stop verifying after a restart
    logger.error("SIGNING_SECRET is not set, using a random key for this process")
    SIGNING_SECRET = secrets.token_hex(32)
SIGNED_URL_TTL = int(os.getenv('SIGNED_URL_TTL', 365 * 24 * 60 * 60))  # 1 year

# SEARCH
SEARCH_CACHE_TTL = int(os.getenv('SEARCH_CACHE_TTL', 60))
SEARCH_CACHE_MAXSIZE = int(os.getenv('SEARCH_CACHE_MAXSIZE', 1024))
SEARCH_RESULT_LIMIT = int(os.getenv('SEARCH_RESULT_LIMIT', 50))
MAX_QUERY_LENGTH = int(os.getenv('MAX_QUERY_LENGTH', 100))

# ENTRIES
PAGE_SIZE = int(os.getenv('PAGE_SIZE', 10))
MAX_UPLOAD_BYTES = int(os.getenv('MAX_UPLOAD_BYTES', 14 * 1024 * 1024))  # 14 MB, base64 must fit the 20 MB inline limit
MAX_TAGS = 20
