# test_osrm.py
import asyncio

import aiohttp
import pytest

from fake_services import FakeServices
from pickup_route.geo import haversine_m, route_key
from pickup_route.osrm import RateLimiter, RouteClient, parse_route
from pickup_route.errors import RoutingError

A = (10.77, 106.70)
B = (10.78, 106.71)
C = (10.79, 106.72)


class FakeClock:
    def __init__(self):
        self.now = 1000.0

    def __call__(self):
        return self.now


def make_client(http, fake, **kw):
    kw.setdefault("timeout_s", 2.0)
    return RouteClient(http, fake.base_url, **kw)


async def _test_real_route():
    async with FakeServices() as fake, aiohttp.ClientSession() as http:
        client = make_client(http, fake)
        r = await client.compute_route([A, B])
        assert r.distance_m == 1500
        assert r.duration_min == 3
        assert r.is_approximate is False
        assert r.path[0] == pytest.approx(A)
        assert r.path[-1] == pytest.approx(B)
        assert fake.route_calls == [[A, B]]


async def _test_second_call_is_cache_hit():
    async with FakeServices() as fake, aiohttp.ClientSession() as http:
        client = make_client(http, fake)
        first = await client.compute_route([A, B])
        # same points after 6-decimal rounding
        second = await client.compute_route([(10.7700000001, 106.70), B])
        assert len(fake.route_calls) == 1
        assert second == first
        assert second.is_approximate is False
        assert client.limiter.remaining == 4


async def _test_signed_zero_shares_cache_entry():
    async with FakeServices() as fake, aiohttp.ClientSession() as http:
        client = make_client(http, fake)
        await client.compute_route([(1e-7, 106.70), B])
        await client.compute_route([(-1e-7, 106.70), B])
        assert len(fake.route_calls) == 1


async def _test_timeout_falls_back():
    async with FakeServices() as fake, aiohttp.ClientSession() as http:
        fake.route_mode = "slow"
        client = make_client(http, fake, timeout_s=0.1)
        r = await client.compute_route([A, B])
        expected = haversine_m(A, B)
        assert r.is_approximate is True
        assert r.distance_m == pytest.approx(expected)
        assert r.duration_min == pytest.approx(expected / 1000.0 * 3)
        assert r.path == (A, B)


@pytest.mark.parametrize("mode", ["error", "bad", "nocode"])
def test_engine_failures_fall_back(mode):
    async def run():
        async with FakeServices() as fake, aiohttp.ClientSession() as http:
            fake.route_mode = mode
            client = make_client(http, fake)
            r = await client.compute_route([A, B, C])
            assert r.is_approximate is True
            assert r.distance_m > 0
            assert r.duration_min > 0
            assert len(fake.route_calls) == 1

    asyncio.run(run())


async def _test_fallback_is_not_cached():
    async with FakeServices() as fake, aiohttp.ClientSession() as http:
        fake.route_mode = "error"
        client = make_client(http, fake)
        assert (await client.compute_route([A, B])).is_approximate
        fake.route_mode = "ok"
        r = await client.compute_route([A, B])
        assert r.is_approximate is False
        assert len(fake.route_calls) == 2


async def _test_rate_limit():
    async with FakeServices() as fake, aiohttp.ClientSession() as http:
        clock = FakeClock()
        client = make_client(http, fake, clock=clock)
        results = []
        for i in range(6):
            results.append(await client.compute_route([A, (10.78 + i * 0.001, 106.71)]))
            clock.now += 1.0
        assert len(fake.route_calls) == 5
        assert client.request_count == 5
        assert [r.is_approximate for r in results] == [False] * 5 + [True]

        # limited calls do not count: still exactly 5 in the window
        await client.compute_route([A, (11.0, 107.0)])
        assert len(fake.route_calls) == 5

        # cached sequences are still served while limited
        assert (await client.compute_route([A, (10.78, 106.71)])).is_approximate is False

        # window rolls over
        clock.now += 60.0
        r = await client.compute_route([A, (11.0, 107.0)])
        assert r.is_approximate is False
        assert len(fake.route_calls) == 6


async def _test_lru_eviction():
    async with FakeServices() as fake, aiohttp.ClientSession() as http:
        client = make_client(http, fake, cache_size=2)
        await client.compute_route([A, B])
        await client.compute_route([B, C])
        await client.compute_route([A, C])
        assert client.cached(route_key([A, B])) is None
        assert client.cached(route_key([A, C])) is not None
        await client.compute_route([A, B])
        assert len(fake.route_calls) == 4


def test_needs_two_points():
    async def run():
        async with aiohttp.ClientSession() as http:
            client = RouteClient(http, "http://127.0.0.1:9")
            with pytest.raises(ValueError):
                await client.compute_route([A])

    asyncio.run(run())


def test_rate_limiter_rolling_window():
    clock = FakeClock()
    limiter = RateLimiter(2, 60.0, clock)
    assert limiter.try_acquire()
    clock.now += 30
    assert limiter.try_acquire()
    assert not limiter.try_acquire()
    clock.now += 30  # first stamp is exactly 60s old
    assert limiter.try_acquire()
    assert limiter.remaining == 0


def test_parse_route_rejects_malformed():
    with pytest.raises(RoutingError):
        parse_route({"code": "Ok", "routes": []})
    with pytest.raises(RoutingError):
        parse_route({"code": "Ok", "routes": [{"distance": "x", "duration": 1, "geometry": ""}]})
    with pytest.raises(RoutingError):
        parse_route([1, 2])


def test_real_route():
    asyncio.run(_test_real_route())


def test_second_call_is_cache_hit():
    asyncio.run(_test_second_call_is_cache_hit())


def test_signed_zero_shares_cache_entry():
    asyncio.run(_test_signed_zero_shares_cache_entry())


def test_timeout_falls_back():
    asyncio.run(_test_timeout_falls_back())


def test_fallback_is_not_cached():
    asyncio.run(_test_fallback_is_not_cached())


def test_rate_limit():
    asyncio.run(_test_rate_limit())


def test_lru_eviction():
    asyncio.run(_test_lru_eviction())


def test_route_key_folds_negative_zero():
    assert route_key([(-1e-7, -0.0)]) == route_key([(1e-7, 0.0)]) == "0.000000,0.000000"
