from fastapi import FastAPI
from fastapi.testclient import TestClient

from sav3_notifications.infrastructure.rate_limit.memory_rate_limiter import InMemoryRateLimiter
from sav3_notifications.infrastructure.rate_limit.redis_rate_limiter import RedisRateLimiter
from sav3_notifications.middleware import RateLimitMiddleware, RequestTrackingMiddleware


class Clock:
    def __init__(self, now=1000.0):
        self.now = now

    def __call__(self):
        return self.now


def test_memory_rate_limiter_allows_then_blocks():
    rl = InMemoryRateLimiter()
    key = "k1"
    assert rl.allow(key, max_requests=2, window_seconds=60) is True
    assert rl.allow(key, max_requests=2, window_seconds=60) is True
    assert rl.allow(key, max_requests=2, window_seconds=60) is False


def test_memory_rate_limiter_window_slides():
    clock = Clock()
    rl = InMemoryRateLimiter(clock=clock)
    assert rl.allow("k", 1, 60)
    assert not rl.allow("k", 1, 60)
    assert rl.retry_after("k", 60) == 60

    clock.now += 30
    assert rl.retry_after("k", 60) == 30

    clock.now += 31
    assert rl.allow("k", 1, 60)
    assert rl.retry_after("other", 60) == 0


class FakePipe:
    def __init__(self, client):
        self.client = client
        self.ops = []

    def incr(self, k, n):
        self.ops.append(("incr", k, n))
        return self

    def expire(self, k, s, nx=False):
        self.ops.append(("expire", k, s, nx))
        return self

    def execute(self):
        results = []
        for op in self.ops:
            if op[0] == "incr":
                self.client.store[op[1]] = self.client.store.get(op[1], 0) + op[2]
                results.append(self.client.store[op[1]])
            else:
                results.append(self.client.ttls.setdefault(op[1], op[2]) == op[2])
        return results


class FakeRedis:
    def __init__(self):
        self.store = {}
        self.ttls = {}

    def pipeline(self):
        return FakePipe(self)

    def ttl(self, k):
        return self.ttls.get(k, -2)


def test_redis_rate_limiter_with_fake():
    client = FakeRedis()
    rl = RedisRateLimiter(url="redis://fake", client=client)

    assert rl.allow("k1", 2, 60) is True
    assert rl.allow("k1", 2, 60) is True
    assert rl.allow("k1", 2, 60) is False
    assert client.store == {"rl:k1:60": 3}
    assert rl.retry_after("k1", 60) == 60
    assert rl.retry_after("k2", 60) == 0


def _limited_app(max_requests):
    app = FastAPI()
    app.add_middleware(RateLimitMiddleware, limiter=InMemoryRateLimiter(), max_requests=max_requests, window_seconds=60)
    app.add_middleware(RequestTrackingMiddleware)

    @app.get("/ping")
    def ping():
        return {"ok": True}

    @app.get("/health")
    def health():
        return {"ok": True}

    return app


def test_middleware_returns_rate_limited_envelope():
    client = TestClient(_limited_app(2))
    assert client.get("/ping").status_code == 200
    assert client.get("/ping").status_code == 200

    resp = client.get("/ping", headers={"X-Request-ID": "req-42"})

    assert resp.status_code == 429
    assert resp.headers["Retry-After"] == "60"
    assert resp.headers["X-Error-Code"] == "RATE_LIMITED"
    assert resp.headers["X-Error-Retryable"] == "true"
    body = resp.json()
    assert body["success"] is False
    assert body["error"]["code"] == "RATE_LIMITED"
    assert body["error"]["retryable"] is True
    assert body["error"]["details"] == {"retryAfter": 60}
    assert body["meta"]["requestId"] == "req-42"


def test_health_is_never_rate_limited():
    client = TestClient(_limited_app(1))
    for _ in range(3):
        assert client.get("/health").status_code == 200


def test_memory_rate_limiter_forgets_idle_keys():
    clock = Clock()
    rl = InMemoryRateLimiter(clock=clock)
    for ip in ("a", "b", "c"):
        assert rl.allow(f"ip:{ip}", 5, 60)
    assert len(rl._store) == 3

    clock.now += 61
    assert rl.retry_after("ip:a", 60) == 0
    assert rl.allow("ip:b", 5, 60)
    assert rl.retry_after("ip:c", 60) == 0
    assert set(rl._store) == {"ip:b"}
