from datetime import datetime
from types import SimpleNamespace

import pytest
import pytz
from sqlalchemy.exc import OperationalError

from finboard.database import build_engine, init_db
from finboard.services.storage import KeyValueStore

TAIPEI = pytz.timezone("Asia/Taipei")
AFTER_CLOSE = TAIPEI.localize(datetime(2025, 6, 2, 14, 5))


class FailingStore(KeyValueStore):
    """Reads work, every write fails like a full disk."""
    def set(self, key, value):
        raise OperationalError("INSERT INTO kv_entries", {}, Exception("disk full"))


class FakeModels:
    def __init__(self):
        self.responses = []
        self.calls = []

    async def generate_content(self, model, contents, config=None):
        self.calls.append({"model": model, "contents": contents, "config": config})
        if not self.responses:
            raise AssertionError("unexpected Gemini call")
        item = self.responses.pop(0)
        if isinstance(item, Exception):
            raise item
        return SimpleNamespace(text=item)


class FakeGenAI:
    """Stands in for genai.Client; records the keys it was built with."""
    def __init__(self):
        self.models = FakeModels()
        self.api_keys = []

    def queue(self, *responses):
        self.models.responses.extend(responses)

    @property
    def calls(self):
        return self.models.calls

    def factory(self, api_key):
        self.api_keys.append(api_key)
        return SimpleNamespace(aio=SimpleNamespace(models=self.models))


@pytest.fixture
def engine():
    engine = build_engine("sqlite://")
    init_db(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def store(engine):
    return KeyValueStore(engine)


@pytest.fixture
def failing_store(engine):
    return FailingStore(engine)


@pytest.fixture
def fake_genai():
    return FakeGenAI()


def stock(symbol, price=100.0, recommendation="HOLD", name=""):
    return {
        "symbol": symbol,
        "name": name or f"Stock {symbol}",
        "marketCap": "1000億",
        "high52Week": price * 1.2,
        "low52Week": price * 0.8,
        "currentPrice": price,
        "suggestBuyPrice": price * 0.9,
        "suggestSellPrice": price * 1.1,
        "recommendation": recommendation,
        "analysis": "steady",
        "projectedAnnualYield": "4-5%",
        "exampleScenario": "hold",
    }
