import os
import sys
import tempfile
from pathlib import Path

import pytest

ROOT = Path(__file__).resolve().parent.parent
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

# Keep the test run from writing journal_log.txt into the checkout
os.environ.setdefault("LOG_FILE", os.path.join(tempfile.gettempdir(), "audio_journal_test.log"))
os.environ.setdefault("SEARCH_CACHE_TTL", "60")

from cache import SearchResultCache  # noqa: E402
from tests.fakes import FakeAudioStore, FakeClock, FakeCollection  # noqa: E402


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def search_cache(clock):
    return SearchResultCache(ttl=60, maxsize=128, timer=clock)


@pytest.fixture
def entries():
    return FakeCollection()


@pytest.fixture
def audio_store():
    return FakeAudioStore()
