"""Tests for peer connections and direct messages."""

from __future__ import annotations


class TestConnections:
    def test_create_connection(self, client, user, other_user):
        resp = client.post("/api/connections", json={"requesterId": user.id, "receiverId": other_user.id})
        assert resp.status_code == 201
        data = resp.get_json()
        assert data["status"] == "pending"
        assert data["requesterId"] == user.id

    def test_listed_for_both_sides(self, client, user, other_user):
        conn = client.post("/api/connections", json={
            "requesterId": user.id, "receiverId": other_user.id,
        }).get_json()
        for uid in (user.id, other_user.id):
            assert [c["id"] for c in client.get(f"/api/connections/{uid}").get_json()] == [conn["id"]]
        assert client.get("/api/connections/someone-else").get_json() == []

    def test_cannot_connect_with_self(self, client, user):
        resp = client.post("/api/connections", json={"requesterId": user.id, "receiverId": user.id})
        assert resp.status_code == 400
        assert "yourself" in resp.get_json()["error"]

    def test_unknown_receiver(self, client, user):
        resp = client.post("/api/connections", json={"requesterId": user.id, "receiverId": "ghost"})
        assert resp.status_code == 404

    def _incoming(self, client, requester):
        """A pending request from requester to the logged-in client."""
        return client.post("/api/connections", json={
            "requesterId": requester.id, "receiverId": client.user_id,
        }).get_json()

    def test_receiver_accepts(self, auth_client, other_user):
        conn = self._incoming(auth_client, other_user)
        resp = auth_client.put(f"/api/connections/{conn['id']}/status", json={"status": "accepted"})
        assert resp.status_code == 200
        assert resp.get_json()["status"] == "accepted"
        listed = auth_client.get(f"/api/connections/{other_user.id}").get_json()
        assert listed[0]["status"] == "accepted"

    def test_invalid_status(self, auth_client, other_user):
        conn = self._incoming(auth_client, other_user)
        resp = auth_client.put(f"/api/connections/{conn['id']}/status", json={"status": "blocked"})
        assert resp.status_code == 400

    def test_status_on_missing_connection(self, auth_client):
        resp = auth_client.put("/api/connections/missing/status", json={"status": "accepted"})
        assert resp.status_code == 404

    def test_status_requires_login(self, client, user, other_user):
        conn = client.post("/api/connections", json={
            "requesterId": user.id, "receiverId": other_user.id,
        }).get_json()
        resp = client.put(f"/api/connections/{conn['id']}/status", json={"status": "accepted"})
        assert resp.status_code == 401
        assert client.get(f"/api/connections/{user.id}").get_json()[0]["status"] == "pending"

    def test_requester_cannot_accept_own_request(self, auth_client, other_user):
        conn = auth_client.post("/api/connections", json={
            "requesterId": auth_client.user_id, "receiverId": other_user.id,
        }).get_json()
        resp = auth_client.put(f"/api/connections/{conn['id']}/status", json={"status": "accepted"})
        assert resp.status_code == 403
        assert "receiver" in resp.get_json()["error"]
        assert auth_client.get(f"/api/connections/{other_user.id}").get_json()[0]["status"] == "pending"


class TestMessages:
    def test_conversation_oldest_first(self, client, user, other_user):
        for sender, receiver, text in [
            (user, other_user, "Library at 5?"),
            (other_user, user, "Sure, second floor"),
            (user, other_user, "See you there"),
        ]:
            resp = client.post("/api/messages", json={
                "senderId": sender.id, "receiverId": receiver.id, "content": text,
            })
            assert resp.status_code == 201

        convo = client.get(f"/api/messages/{other_user.id}/{user.id}").get_json()
        assert [m["content"] for m in convo] == ["Library at 5?", "Sure, second floor", "See you there"]

    def test_empty_conversation(self, client, user, other_user):
        assert client.get(f"/api/messages/{user.id}/{other_user.id}").get_json() == []

    def test_blank_content(self, client, user, other_user):
        resp = client.post("/api/messages", json={
            "senderId": user.id, "receiverId": other_user.id, "content": "",
        })
        assert resp.status_code == 400

    def test_unknown_sender(self, client, other_user):
        resp = client.post("/api/messages", json={
            "senderId": "ghost", "receiverId": other_user.id, "content": "hi",
        })
        assert resp.status_code == 404
