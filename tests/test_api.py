from __future__ import annotations


def test_health_reports_service_state(client):
    client.post("/api/twilio/incoming", data={"CallSid": "CA1", "From": "+15550001111"})

    response = client.get("/api/health")

    assert response.status_code == 200
    payload = response.json()
    assert payload["status"] == "ok"
    assert payload["timestamp"].startswith("20")
    assert payload["active_calls"] == 1
    assert payload["stt_provider"] == "twilio"
    assert payload["escalation_method"] == "telegram"
    assert payload["pending_escalations"] >= 0


def test_unknown_route_returns_404(client):
    assert client.get("/api/nope").status_code == 404
