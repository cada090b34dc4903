import asyncio
import sqlite3
import threading
from urllib.parse import parse_qs, urlsplit

import pytest

from build_color_cache import store_color
from huemap_lib.oracles import (
    ORACLE_REGISTRY, CachedOracle, ColorApiOracle, DatabaseOracle, OracleError, SCHEMA,
    create_oracle, get_oracle, list_oracles,
)
from huemap_lib.oracles.color_api import parse_color_payload
from huemap_lib.oracles.database import DATABASE_PATH_ENV, cache_coordinates, resolve_database_path
from tests.helpers import FakeOracle, make_color


@pytest.fixture
def color_db(tmp_path, monkeypatch):
    monkeypatch.delenv(DATABASE_PATH_ENV, raising=False)
    path = tmp_path / "colors.sqlite"
    conn = sqlite3.connect(str(path))
    conn.executescript(SCHEMA)
    store_color(conn, 0, 60, 50, make_color("Red", 0))
    store_color(conn, 120, 60, 50, make_color("Green", 120))
    conn.commit()
    conn.close()
    return path


def test_registry():
    assert list_oracles() == ["api", "cached", "database"]
    assert get_oracle("database") is DatabaseOracle
    with pytest.raises(ValueError):
        get_oracle("crayons")
    assert create_oracle("crayons") is None
    assert isinstance(create_oracle("api", {"timeout": "3"}), ColorApiOracle)
    assert set(ORACLE_REGISTRY) == set(list_oracles())


def test_api_url():
    oracle = ColorApiOracle({"endpoint": "http://colors.local/id"})
    url = urlsplit(oracle.build_url(-30, 120, 12.5))
    assert url.netloc == "colors.local"
    assert parse_qs(url.query) == {"hsl": ["330,100%,12.5%"]}
    assert oracle.timeout == 10.0


def test_parse_color_payload():
    payload = {
        "name": {"value": "Screamin' Green", "closest_named_hex": "#66FF66"},
        "rgb": {"value": "rgb(102, 255, 102)", "r": 102, "g": 255, "b": 102, "fraction": {}},
        "hsl": {"value": "hsl(120, 100%, 70%)", "h": 120, "s": 100, "l": 70},
    }
    color = parse_color_payload(payload)
    assert color.name == "Screamin' Green"
    assert color.rgb.g == 255
    assert color.hsl.l == 70

    with pytest.raises(KeyError):
        parse_color_payload({"name": {}})


def test_oracle_error_retryable():
    assert OracleError("timeout").retryable
    assert OracleError("bad gateway", status=502).retryable
    assert not OracleError("bad request", status=400).retryable


def test_database_lookup(color_db):
    oracle = DatabaseOracle({"database_path": str(color_db)})
    assert oracle.is_available()

    color = asyncio.run(oracle.lookup(119.6, 60.2, 49.8))
    assert color.name == "Green"
    assert oracle.hits == 1

    with pytest.raises(OracleError):
        asyncio.run(oracle.lookup(240, 60, 50))
    assert oracle.misses == 1
    asyncio.run(oracle.close())


def test_database_missing_file(tmp_path, monkeypatch):
    monkeypatch.delenv(DATABASE_PATH_ENV, raising=False)
    oracle = DatabaseOracle({"database_path": str(tmp_path / "nope.sqlite")})
    assert not oracle.is_available()
    with pytest.raises(OracleError, match="not found"):
        asyncio.run(oracle.lookup(0, 60, 50))


def test_database_path_resolution(monkeypatch):
    monkeypatch.delenv(DATABASE_PATH_ENV, raising=False)
    assert resolve_database_path("cache/c.sqlite").name == "c.sqlite"
    assert str(resolve_database_path(None)).endswith("colors.sqlite")
    monkeypatch.setenv(DATABASE_PATH_ENV, "/tmp/override.sqlite")
    assert str(resolve_database_path("cache/c.sqlite")) == "/tmp/override.sqlite"


def test_cache_coordinates():
    assert cache_coordinates(359.6, 100.4, -1) == (0, 100, 0)
    assert cache_coordinates(-90, 60, 50) == (270, 60, 50)


def test_cached_oracle_falls_back(color_db):
    api = FakeOracle([(0, 360, "Live")])
    oracle = CachedOracle({"database_path": str(color_db)}, api=api)

    async def run():
        cached = await oracle.lookup(0, 60, 50)
        live = await oracle.lookup(240, 60, 50)
        await oracle.close()
        return cached, live

    cached, live = asyncio.run(run())
    assert cached.name == "Red"
    assert live.name == "Live"
    assert oracle.fallbacks == 1
    assert api.lookups == [(240, 60, 50)]
    assert api.closed


def test_cached_oracle_without_database(tmp_path, monkeypatch):
    monkeypatch.delenv(DATABASE_PATH_ENV, raising=False)
    api = FakeOracle([(0, 360, "Live")])
    oracle = CachedOracle({"database_path": str(tmp_path / "missing.sqlite")}, api=api)
    assert asyncio.run(oracle.lookup(10, 60, 50)).name == "Live"
    assert oracle.status()["database"]["available"] is False


def test_bind_fixes_saturation_and_lightness():
    oracle = FakeOracle()
    sample = oracle.bind(30, 70)
    color = asyncio.run(sample(100))
    assert color.name == "Green"
    assert oracle.lookups == [(100, 30, 70)]


class _ThreadRecordingDatabase(DatabaseOracle):
    def __init__(self, config=None):
        super().__init__(config)
        self.threads = []

    def is_available(self) -> bool:
        self.threads.append(threading.get_ident())
        return super().is_available()

    def _close(self) -> None:
        self.threads.append(threading.get_ident())
        super()._close()


def test_cached_oracle_reads_cache_off_the_event_loop(color_db):
    database = _ThreadRecordingDatabase({"database_path": str(color_db)})
    api = FakeOracle([(0, 360, "Live")])
    oracle = CachedOracle(database=database, api=api)

    async def run():
        loop_thread = threading.get_ident()
        cached = await oracle.lookup(0, 60, 50)
        await oracle.close()
        return loop_thread, cached

    loop_thread, cached = asyncio.run(run())
    assert cached.name == "Red"
    assert len(database.threads) == 2
    assert loop_thread not in database.threads
