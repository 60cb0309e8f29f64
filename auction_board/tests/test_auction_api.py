import pytest
from fastapi import HTTPException
from fastapi.testclient import TestClient

import auction_board.main as main
from auction_board.data.auction_manager import AuctionManager

INCENTIVES = [
    {"id": "gym", "name": "New Gym Floor", "target": 5000, "active": True},
    {"name": "Band Uniforms", "target": "2500", "displayUntilMet": True},
]


def test_get_auction_returns_defaults(client: TestClient):
    response = client.get("/api/auction")

    assert response.status_code == 200
    assert response.json() == {
        "name": "Your Awesome Auction Name",
        "endDateTime": None,
        "announcements": [],
        "askMeMode": False,
        "askMeTitle": "Ask Me Spotlight",
        "askMeMessage": "",
        "askMeTotal": 0.0,
        "incentives": [],
    }
    assert "no-store" in response.headers["cache-control"]


def test_partial_update_leaves_other_fields_alone(client: TestClient):
    client.put("/api/auction", json={"askMeMode": True, "askMeTotal": 250})

    response = client.put("/api/auction", json={"name": "Spring Gala"})

    assert response.status_code == 200
    data = response.json()
    assert data["name"] == "Spring Gala"
    assert data["askMeMode"] is True
    assert data["askMeTotal"] == 250.0


def test_incentives_are_normalized_and_keep_their_ids(client: TestClient):
    response = client.put("/api/auction", json={"incentives": INCENTIVES})

    assert response.status_code == 200
    incentives = response.json()["incentives"]
    assert [item["name"] for item in incentives] == ["New Gym Floor", "Band Uniforms"]
    assert incentives[0]["id"] == "gym"
    assert incentives[1]["id"]
    assert incentives[1]["target"] == 2500.0
    assert incentives[1]["displayUntilMet"] is True
    assert incentives[1]["active"] is False

    resubmitted = client.put("/api/auction", json={"incentives": list(reversed(incentives))})

    assert [item["id"] for item in resubmitted.json()["incentives"]] == [
        incentives[1]["id"],
        "gym",
    ]


def test_incentive_without_a_name_is_rejected(client: TestClient):
    response = client.put(
        "/api/auction", json={"incentives": [{"name": "Gym"}, {"name": "  ", "target": 10}]}
    )

    assert response.status_code == 400
    assert response.json() == {"detail": "incentive at index 1 must have a name"}
    assert client.get("/api/auction").json()["incentives"] == []


@pytest.mark.parametrize(
    "body",
    [
        {"name": None},
        {"name": ""},
        {"askMeMode": "yes"},
        {"askMeTotal": -5},
        {"askMeTitle": "x" * 121},
        {"endDateTime": "next tuesday"},
        {"announcements": ["x" * 201]},
        {"incentives": "gym"},
    ],
)
def test_invalid_updates_are_rejected(client: TestClient, body):
    response = client.put("/api/auction", json=body)

    assert response.status_code == 422
    assert isinstance(response.json()["detail"], list)


def test_end_date_time_can_be_cleared(client: TestClient):
    client.put("/api/auction", json={"endDateTime": "2024-05-01T21:00:00Z"})

    response = client.put("/api/auction", json={"endDateTime": None})

    assert response.status_code == 200
    assert response.json()["endDateTime"] is None


def test_announcements_round_trip(client: TestClient):
    response = client.put(
        "/api/announcements", json={"announcements": ["Dessert dash at 8", "Bar closes at 10"]}
    )

    assert response.status_code == 200
    assert response.json() == ["Dessert dash at 8", "Bar closes at 10"]
    assert client.get("/api/announcements").json() == ["Dessert dash at 8", "Bar closes at 10"]
    assert client.get("/api/auction").json()["announcements"] == [
        "Dessert dash at 8",
        "Bar closes at 10",
    ]


def test_announcements_must_be_strings(client: TestClient):
    response = client.put("/api/announcements", json={"announcements": [1, 2]})

    assert response.status_code == 422


def test_incentive_state_clears_flags(client: TestClient):
    client.put(
        "/api/auction",
        json={"incentives": [{"id": "gym", "name": "Gym", "displayNow": True, "target": 10}]},
    )

    response = client.post("/api/incentives/gym/state", json={"displayNow": False})

    assert response.status_code == 200
    assert response.json()["displayNow"] is False
    assert response.json()["target"] == 10.0
    assert client.get("/api/auction").json()["incentives"][0]["displayNow"] is False


def test_incentive_state_for_unknown_id(client: TestClient):
    response = client.post("/api/incentives/missing/state", json={"displayNow": False})

    assert response.status_code == 404
    assert response.json() == {"detail": "incentive not found"}


def test_incentive_state_requires_booleans(client: TestClient):
    response = client.post("/api/incentives/gym/state", json={"displayNow": "no"})

    assert response.status_code == 422


def test_cors_allows_the_board_origin(client: TestClient):
    response = client.get("/api/auction", headers={"Origin": "http://board.local"})

    assert response.headers["access-control-allow-origin"] == "*"


def test_health_check(client: TestClient):
    response = client.get("/health")

    assert response.status_code == 200
    assert response.json() == {"status": "healthy", "database": "connected"}


def test_manager_creates_a_single_auction_row(auction_manager: AuctionManager):
    first = auction_manager.get_auction()
    second = auction_manager.get_auction()

    assert first.id == second.id == 1


def test_manager_state_update_raises_for_unknown_incentive(auction_manager: AuctionManager):
    with pytest.raises(HTTPException) as excinfo:
        auction_manager.update_incentive_state("nope", {"displayNow": False})

    assert excinfo.value.status_code == 404


def test_manager_removes_incentives_missing_from_a_resubmission(auction_manager: AuctionManager):
    auction_manager.update_auction({"incentives": INCENTIVES})

    payload = auction_manager.update_auction({"incentives": [{"id": "gym", "name": "Gym"}]})

    assert [item["id"] for item in payload["incentives"]] == ["gym"]
    assert payload["incentives"][0]["target"] == 0.0


class _BrokenSession:
    def __init__(self):
        self.closed = False

    def execute(self, statement):
        raise RuntimeError("disk gone")

    def close(self):
        self.closed = True


def test_health_check_reports_database_failure(client: TestClient, monkeypatch):
    session = _BrokenSession()
    monkeypatch.setattr(main, "SessionLocal", lambda: session)

    response = client.get("/health")

    assert response.status_code == 503
    assert "disk gone" in response.json()["detail"]
    assert session.closed is True
