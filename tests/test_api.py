import pytest
from fastapi.testclient import TestClient

from splitstats.core.settings import Settings, get_settings
from splitstats.main import app, get_engine

AUTH = {"Authorization": "Bearer test-token"}


@pytest.fixture
def client(engine):
    app.dependency_overrides[get_engine] = lambda: engine
    app.dependency_overrides[get_settings] = lambda: Settings(tokens=["test-token"])
    # No context manager: the lifespan would build an engine from the environment
    yield TestClient(app)
    app.dependency_overrides.clear()


def test_requires_token(client):
    assert client.get("/experiments").status_code == 401
    response = client.get("/experiments", headers={"Authorization": "Bearer wrong"})
    assert response.status_code == 401


def test_experiment_lifecycle(client):
    response = client.put(
        "/experiments/colors",
        json={"variations": [{"name": "red", "weight": 2}, "blue"], "events": ["signup"]},
        headers=AUTH,
    )
    assert response.status_code == 200
    body = response.json()
    assert body["name"] == "colors"
    assert body["variations"] == [{"name": "red", "weight": 2.0}, {"name": "blue", "weight": 1.0}]

    response = client.get("/experiments", headers=AUTH)
    assert [e["name"] for e in response.json()] == ["colors"]

    assert client.get("/experiments/colors", headers=AUTH).json()["events"] == ["signup"]


def test_participate_and_convert(client):
    client.put("/experiments/colors", json={"variations": ["red", "blue"]}, headers=AUTH)

    response = client.post(
        "/experiments/colors/participants",
        json={"user": "user1", "ip": "10.0.0.1", "variation": "blue"},
        headers=AUTH,
    )
    assert response.status_code == 200
    assert response.json() == {"experiment": "colors", "user": "user1", "variation": "blue"}

    response = client.get("/experiments/colors/participants/user1", headers=AUTH)
    assert response.json()["variation"] == "blue"
    response = client.get("/experiments/colors/participants/user2", headers=AUTH)
    assert response.json()["variation"] is None

    response = client.post("/events", json={"event": "signup", "user": "user1"}, headers=AUTH)
    assert response.status_code == 201

    response = client.get(
        "/experiments/colors/result/signup", params={"cache_expiry_time": 0}, headers=AUTH
    )
    assert response.status_code == 200
    result = response.json()
    assert result["total_participants"] == 1
    assert result["total_conversions"] == 1
    blue = next(v for v in result["variations"] if v["name"] == "blue")
    assert blue["conversion_rate"] == 1.0

    response = client.get("/experiments/colors/results/signup", headers=AUTH)
    assert response.json()["total_conversions"] == 1

    response = client.get(
        "/experiments/colors/daily-results/signup", params={"cumulative": True}, headers=AUTH
    )
    daily = response.json()
    assert daily["cumulative"] is True
    assert daily["days"][-1]["total_conversions"] == 1

    response = client.post("/users/user1/opt-out", headers=AUTH)
    assert response.json() == {"user": "user1", "participations": 1}


def test_event_stats(client):
    client.post("/events", json={"event": "pageview", "user": "user1"}, headers=AUTH)
    response = client.get("/events/pageview/stats/2024-03-10T00:00:00", headers=AUTH)
    assert response.status_code == 200
    assert response.json()["total"] == 1


def test_event_stats_with_utc_offset(client):
    client.post("/events", json={"event": "pageview", "user": "user1"}, headers=AUTH)
    # 01:00 at +05:00 on the 11th falls on the 10th in UTC
    response = client.get("/events/pageview/stats/2024-03-11T01:00:00%2B05:00", headers=AUTH)
    assert response.status_code == 200
    assert response.json()["day"] == "2024-03-10T00:00:00"
    assert response.json()["total"] == 1


def test_error_mapping(client):
    response = client.get("/experiments/colors", headers=AUTH)
    assert response.status_code == 404
    assert "colors" in response.json()["detail"]

    client.put("/experiments/colors", json={"variations": ["red"]}, headers=AUTH)
    response = client.post(
        "/experiments/colors/participants",
        json={"user": "user1", "variation": "purple"},
        headers=AUTH,
    )
    assert response.status_code == 400

    response = client.put("/experiments/sizes", json={"variations": ["a", "a"]}, headers=AUTH)
    assert response.status_code == 422
