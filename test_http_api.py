"""
Tests for the HTTP API routes and the threaded server bridge
"""

import asyncio
import threading

import pytest
import requests

import http_api_server
from conftest import FakeConnection, make_game
from http_api_server import create_api_server, dispatch, set_game_loop


def call(game_loop, method, path, query=None, body=None):
    return asyncio.run(dispatch(game_loop, method, path, query or {}, body))


class TestDispatch:
    def test_submit_comment(self):
        async def scenario():
            game_loop = make_game()
            client = FakeConnection()
            await game_loop.hub.register(client)
            await game_loop.start_round()
            result = await dispatch(game_loop, "POST", "/api/comments", {},
                                    {"username": "alice", "originalText": "please go right!!"})
            return result, client

        (status, payload), client = asyncio.run(scenario())
        assert status == 200
        assert payload["isValid"] is True
        assert payload["command"] == "right"
        assert payload["username"] == "alice"
        assert client.of_type("commandReceived")[0]["data"]["direction"] == "RIGHT"

    @pytest.mark.parametrize("body", [
        {"username": "alice"},
        {"originalText": ""},
        {"originalText": 5},
        ["not", "an", "object"],
    ])
    def test_submit_comment_validation(self, body):
        game_loop = make_game()
        status, payload = call(game_loop, "POST", "/api/comments", body=body)
        assert status == 400
        assert "error" in payload
        assert game_loop.store.recent_comments() == []

    def test_list_comments(self):
        game_loop = make_game()

        async def scenario():
            for text in ("one", "two", "three"):
                await game_loop.submit_comment("a", text)
            return await dispatch(game_loop, "GET", "/api/comments", {"limit": ["2"]}, None)

        status, payload = asyncio.run(scenario())
        assert status == 200
        assert [c["originalText"] for c in payload] == ["three", "two"]

    @pytest.mark.parametrize("limit", [["abc"], ["0"], ["-4"]])
    def test_bad_limit_falls_back_to_default(self, limit):
        status, payload = call(make_game(), "GET", "/api/comments", {"limit": limit})
        assert status == 200
        assert payload == []

    def test_start_and_stop(self):
        game_loop = make_game()

        async def scenario():
            started = await dispatch(game_loop, "POST", "/api/game/start", {}, {})
            stopped = await dispatch(game_loop, "POST", "/api/game/stop", {}, {})
            again = await dispatch(game_loop, "POST", "/api/game/stop", {}, {})
            return started, stopped, again

        (s_status, s_payload), (t_status, t_payload), (a_status, _) = asyncio.run(scenario())
        assert s_status == 200
        assert s_payload["success"] is True
        assert t_status == 200
        assert t_payload == {"success": True, "gameId": s_payload["gameId"], "finalScore": 0}
        assert a_status == 409

    def test_stop_during_restart_gap_is_a_no_op(self):
        game_loop = make_game()

        async def scenario():
            await game_loop.start_round()
            await game_loop._end_and_restart("self")
            response = await dispatch(game_loop, "POST", "/api/game/stop", {}, {})
            await asyncio.sleep(0.1)
            return response

        status, _ = asyncio.run(scenario())
        assert status == 409
        assert game_loop.store.active_id() is not None

    def test_current_game(self):
        game_loop = make_game()

        async def scenario():
            await game_loop.start_round()
            return await dispatch(game_loop, "GET", "/api/game/current", {}, None)

        status, payload = asyncio.run(scenario())
        assert status == 200
        assert payload["game"]["isActive"] is True
        assert payload["connectedPlayers"] == 0

    def test_current_game_before_first_round(self):
        status, payload = call(make_game(), "GET", "/api/game/current")
        assert payload == {"game": None, "gameState": None, "connectedPlayers": 0}

    def test_stats(self):
        status, payload = call(make_game(), "GET", "/api/stats")
        assert status == 200
        assert set(payload) == {"totalGames", "totalComments", "activePlayers", "averageScore"}

    def test_unknown_route(self):
        assert call(make_game(), "GET", "/api/nothing")[0] == 404
        assert call(make_game(), "DELETE", "/api/comments")[0] == 404


class TestServerBridge:
    def setup_method(self):
        self.loop = asyncio.new_event_loop()
        self.loop_thread = threading.Thread(target=self.loop.run_forever, daemon=True)
        self.loop_thread.start()

        self.game_loop = make_game()
        set_game_loop(self.game_loop, self.loop)

        self.server = create_api_server("127.0.0.1", 0)
        self.server_thread = threading.Thread(target=self.server.serve_forever, daemon=True)
        self.server_thread.start()
        self.base = f"http://127.0.0.1:{self.server.server_address[1]}"

    def teardown_method(self):
        self.server.shutdown()
        self.server.server_close()
        stop = asyncio.run_coroutine_threadsafe(self.game_loop.shutdown(), self.loop)
        stop.result(timeout=5)
        self.loop.call_soon_threadsafe(self.loop.stop)
        self.loop_thread.join(timeout=5)
        self.loop.close()
        set_game_loop(None, None)

    def test_round_trip(self):
        started = requests.post(f"{self.base}/api/game/start", timeout=5)
        assert started.status_code == 200
        game_id = started.json()["gameId"]

        comment = requests.post(f"{self.base}/api/comments",
                                json={"originalText": "go up"}, timeout=5)
        assert comment.status_code == 200
        assert comment.json()["gameId"] == game_id
        assert comment.headers["Access-Control-Allow-Origin"] == "*"

        current = requests.get(f"{self.base}/api/game/current", timeout=5).json()
        assert current["gameState"]["direction"] == "up"

    def test_invalid_json_body(self):
        response = requests.post(f"{self.base}/api/comments", data="{not json",
                                 headers={"Content-Type": "application/json"}, timeout=5)
        assert response.status_code == 400

    def test_validation_error(self):
        response = requests.post(f"{self.base}/api/comments", json={"username": "x"}, timeout=5)
        assert response.status_code == 400
        assert "originalText" in response.json()["error"]

    def test_preflight(self):
        response = requests.options(f"{self.base}/api/comments", timeout=5)
        assert response.status_code == 200
        assert "POST" in response.headers["Access-Control-Allow-Methods"]


def test_unavailable_without_game_loop():
    set_game_loop(None, None)
    server = create_api_server("127.0.0.1", 0)
    thread = threading.Thread(target=server.serve_forever, daemon=True)
    thread.start()
    try:
        response = requests.get(f"http://127.0.0.1:{server.server_address[1]}/api/stats", timeout=5)
        assert response.status_code == 503
        assert http_api_server.GAME_LOOP is None
    finally:
        server.shutdown()
        server.server_close()
