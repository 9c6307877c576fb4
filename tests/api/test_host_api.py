"""Tests for host adapter endpoints."""

import pytest
from fastapi.testclient import TestClient

from npc_vibes.api.schemas import TokenPayload
from npc_vibes.main import app

ARIA = {
    "token_id": "t-aria",
    "actor_id": "aria",
    "actor_type": "character",
    "name": "Aria",
    "scene_id": "s1",
    "owner_ids": ["player1"],
}
BRAM = {
    "token_id": "t-bram",
    "actor_id": "bram",
    "actor_type": "npc",
    "name": "Bram",
    "scene_id": "s1",
    "x": 100.0,
}


@pytest.fixture()
def gm_runtime(make_runtime):
    """GM runtime rolling 1 then 20."""
    return make_runtime(rolls=(1, 20))


@pytest.fixture()
def gm_client(gm_runtime) -> TestClient:
    app.state.runtime = gm_runtime
    return TestClient(app)


class TestTokens:
    """Tests for /host/tokens."""

    def test_untracked_actor_type(self, client: TestClient):
        response = client.post(
            "/host/tokens",
            json={"token_id": "t-chest", "actor_type": "loot", "scene_id": "s1"},
        )
        assert response.status_code == 200
        assert response.json() == {"tracked": False, "outcomes": []}

    def test_first_sight_returns_outcomes(self, gm_client: TestClient):
        assert gm_client.post("/host/tokens", json=ARIA).json()["outcomes"] == []

        data = gm_client.post("/host/tokens", json=BRAM).json()

        assert data["tracked"] is True
        assert [o["dispositionType"] for o in data["outcomes"]] == [
            "repulsed",
            "awestruck",
        ]

    def test_second_event_does_not_reroll(self, gm_client: TestClient):
        gm_client.post("/host/tokens", json=ARIA)
        gm_client.post("/host/tokens", json=BRAM)

        response = gm_client.patch("/host/tokens/t-bram", json={"x": 90.0})

        assert response.status_code == 200
        assert response.json()["outcomes"] == []

    def test_move_into_range(self, gm_client: TestClient):
        gm_client.post("/host/tokens", json=ARIA)
        far = gm_client.post("/host/tokens", json={**BRAM, "x": 1000.0}).json()
        assert far["outcomes"] == []

        near = gm_client.patch("/host/tokens/t-bram", json={"x": 120.0}).json()
        assert len(near["outcomes"]) == 2

    def test_patch_unknown_token(self, client: TestClient):
        response = client.patch("/host/tokens/missing", json={"x": 1.0})
        assert response.status_code == 404

    def test_patch_validation(self, client: TestClient):
        client.post("/host/tokens", json=ARIA)
        response = client.patch("/host/tokens/t-aria", json={"width": 0})
        assert response.status_code == 422

    def test_delete_token(self, gm_client: TestClient, gm_runtime):
        gm_client.post("/host/tokens", json=ARIA)
        gm_client.post("/host/tokens", json=BRAM)

        assert gm_client.delete("/host/tokens/t-bram").json() == {"removed": True}
        assert gm_client.delete("/host/tokens/t-bram").json() == {"removed": False}
        assert gm_runtime.registry.get_token("t-bram") is None
        assert gm_client.get("/host/auras").json() == []


class TestScenes:
    """Tests for walls, scene ready and sight refresh."""

    def test_wall_blocks_first_sight(self, gm_client: TestClient, gm_runtime):
        response = gm_client.put(
            "/host/scenes/s1/walls",
            json={"walls": [{"ax": 50, "ay": -10, "bx": 50, "by": 10}]},
        )
        assert response.json() == {"count": 1}

        gm_client.post("/host/tokens", json=ARIA)
        data = gm_client.post("/host/tokens", json=BRAM).json()
        assert data["outcomes"] == []
        assert gm_runtime.store.all_dispositions() == []

    def test_removing_walls_allows_sight(self, gm_client: TestClient):
        gm_client.put(
            "/host/scenes/s1/walls",
            json={"walls": [{"ax": 50, "ay": -10, "bx": 50, "by": 10}]},
        )
        gm_client.post("/host/tokens", json=ARIA)
        gm_client.post("/host/tokens", json=BRAM)

        gm_client.put("/host/scenes/s1/walls", json={"walls": []})
        data = gm_client.post("/host/sight-refresh").json()

        assert len(data["outcomes"]) == 2
        assert data["processed_pairs"] == ["aria-bram"]

    def test_scene_ready(self, gm_client: TestClient, gm_runtime):
        """Tokens known before the scene is ready get checked on ready."""
        gm_runtime.registry.upsert_token(TokenPayload(**ARIA).to_view())
        gm_runtime.registry.upsert_token(TokenPayload(**BRAM).to_view())

        data = gm_client.post("/host/scenes/s1/ready").json()

        assert len(data["outcomes"]) == 2
        assert data["processed_pairs"] == ["aria-bram"]
        assert gm_runtime.registry.is_ready("s1")
        assert "bram" in gm_runtime.store.npc_registry()


class TestWorldData:
    """Tests for actors, users, messages and auras."""

    def test_set_actors(self, client: TestClient, runtime):
        response = client.put("/host/actors", json={"actors": {"bram": "Bram"}})
        assert response.json() == {"count": 1}
        assert runtime.registry.display_name("bram") == "Bram"

    def test_set_users(self, client: TestClient, runtime):
        response = client.put(
            "/host/users",
            json={
                "users": [
                    {"user_id": "gm2", "is_gm": True},
                    {"user_id": "player2"},
                ]
            },
        )
        assert response.json() == {"count": 2}
        assert runtime.registry.gm_user_ids() == ["gm2"]

    def test_drain_messages(self, gm_client: TestClient):
        gm_client.post("/host/tokens", json=ARIA)
        gm_client.post("/host/tokens", json=BRAM)

        messages = gm_client.post("/host/messages/drain").json()

        assert [m["kind"] for m in messages] == [
            "first_sight",
            "disposition",
            "disposition",
        ]
        assert all(m["whisper"] == ["gm"] for m in messages)
        assert gm_client.post("/host/messages/drain").json() == []

    def test_auras(self, gm_client: TestClient):
        gm_client.post("/host/tokens", json=ARIA)
        gm_client.post("/host/tokens", json=BRAM)

        auras = gm_client.get("/host/auras").json()

        assert len(auras) == 1
        assert auras[0]["npcTokenId"] == "t-bram"
        assert auras[0]["dispositionType"] == "repulsed"


class TestSocket:
    """Tests for the broadcast WebSocket relay."""

    def test_socket_receives_gm_broadcast(self, gm_client: TestClient):
        gm_client.post("/host/tokens", json=ARIA)
        with gm_client.websocket_connect("/host/socket") as socket:
            gm_client.post("/host/tokens", json=BRAM)
            message = socket.receive_json()

        assert message["type"] == "dispositionRolled"
        assert message["pcId"] == "aria"
        assert len(message["outcomes"]) == 2
