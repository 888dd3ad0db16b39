import sys
from pathlib import Path

import httpx
import pytest

BACKEND_ROOT = Path(__file__).resolve().parents[1]
if str(BACKEND_ROOT) not in sys.path:
    sys.path.insert(0, str(BACKEND_ROOT))

from utils.cache import TTLCache
from utils.result import Err, ErrorKind, Ok, err_from_http
from utils.utcnow import gdelt_window, utc_iso, utcnow


def test_cache_serves_value_until_ttl_elapses(cache_factory, clock):
    cache = cache_factory(ttl_seconds=60)
    cache.set("conflict_sudan_7", {"conflictLevel": "HIGH"})

    clock.advance(59)
    assert cache.get("conflict_sudan_7") == {"conflictLevel": "HIGH"}

    clock.advance(1)
    assert cache.get("conflict_sudan_7") is None


def test_expired_entry_still_available_as_stale_fallback(cache_factory, clock):
    cache = cache_factory(ttl_seconds=60)
    cache.set("k", "v")
    clock.advance(3600)

    assert cache.get("k") is None
    assert cache.get("k", max_age=6 * 3600) == "v"
    assert cache.age("k") == pytest.approx(3600)


def test_set_overwrites_and_resets_age(cache_factory, clock):
    cache = cache_factory(ttl_seconds=60)
    cache.set("k", 1)
    clock.advance(50)
    cache.set("k", 2)
    clock.advance(50)

    assert cache.get("k") == 2


def test_caches_are_independent_instances(clock):
    first = TTLCache(60, clock=clock, name="geography")
    second = TTLCache(60, clock=clock, name="refugees")
    first.set("shared", "geo")

    assert second.get("shared") is None
    assert "shared" in first
    assert "shared" not in second


def test_cache_stats_counts_fresh_entries(cache_factory, clock):
    cache = cache_factory(ttl_seconds=10, name="ai_analysis")
    cache.set("a", 1)
    clock.advance(20)
    cache.set("b", 2)

    stats = cache.stats()
    assert stats == {"name": "ai_analysis", "size": 2, "fresh": 1, "ttlSeconds": 10.0}

    cache.delete("a")
    assert len(cache) == 1
    cache.clear()
    assert len(cache) == 0


def test_cache_rejects_non_positive_ttl():
    with pytest.raises(ValueError):
        TTLCache(0)


def test_err_from_http_classifies_status_codes():
    request = httpx.Request("GET", "https://api.example/x")
    not_found = httpx.HTTPStatusError("nf", request=request, response=httpx.Response(404, request=request))
    server = httpx.HTTPStatusError("boom", request=request, response=httpx.Response(503, request=request))

    assert err_from_http(not_found, "UNHCR").kind == ErrorKind.NOT_FOUND
    err = err_from_http(server, "UNHCR")
    assert err.kind == ErrorKind.UPSTREAM_UNAVAILABLE
    assert err.status_code == 503
    assert err.to_dict() == {"kind": "upstream_unavailable", "message": "UNHCR returned HTTP 503", "statusCode": 503}


def test_err_from_http_classifies_timeouts_and_bad_json():
    assert err_from_http(httpx.ReadTimeout("slow"), "GDELT").message == "GDELT timed out"
    assert err_from_http(ValueError("Expecting value"), "GDELT").kind == ErrorKind.MALFORMED_RESPONSE


def test_ok_and_err_expose_ok_flag():
    assert Ok([1, 2], source="GDELT").ok is True
    assert Err(ErrorKind.NOT_CONFIGURED, "missing key").ok is False


def test_utc_iso_has_millisecond_z_suffix():
    stamp = utc_iso(utcnow())
    assert stamp.endswith("Z")
    assert len(stamp.split(".")[1]) == 4  # three digits plus Z


def test_gdelt_window_formats_full_days():
    start, end = gdelt_window(7, now=utcnow().replace(year=2024, month=3, day=10))
    assert start == "20240303000000"
    assert end == "20240310235959"


def test_stored_none_is_a_hit_for_membership(cache_factory, clock):
    cache = cache_factory(ttl_seconds=60)
    cache.set("empty", None)

    assert "empty" in cache
    assert "absent" not in cache
    assert cache.get("absent", default="miss") == "miss"
    assert cache.get("empty", default="miss") is None

    clock.advance(60)
    assert "empty" not in cache
