from fastapi.testclient import TestClient

from holidaysri.main import app


def test_health():
    with TestClient(app) as c:
        r = c.get("/health")
        assert r.status_code == 200
        assert r.json() == {"status": "ok", "store": "memory"}
        assert r.headers["X-Request-ID"]
