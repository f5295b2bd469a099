from fastapi import FastAPI, Request
from fastapi.testclient import TestClient
from slowapi import Limiter
from slowapi.errors import RateLimitExceeded
from slowapi.util import get_remote_address

from scholardesk.rate_limit import limiter, rate_limit_exceeded_handler


def test_limiter_disabled_in_tests():
    assert limiter.enabled is False


def test_rate_limit_exceeded_returns_429():
    strict = Limiter(key_func=get_remote_address, storage_uri="memory://")
    app = FastAPI()
    app.state.limiter = strict
    app.add_exception_handler(RateLimitExceeded, rate_limit_exceeded_handler)

    @app.post("/auth/login")
    @strict.limit("1/minute")
    def login(request: Request):
        return {"ok": True}

    client = TestClient(app)
    assert client.post("/auth/login").status_code == 200
    response = client.post("/auth/login")
    assert response.status_code == 429
    assert response.json()["error_code"] == "RATE_LIMIT_EXCEEDED"
