class TestOperationalEndpoints:

    def test_health(self, client):
        response = client.get("/health")
        assert response.status_code == 200
        assert response.json()["status"] == "healthy"
        assert "X-Process-Time" in response.headers

    def test_info_lists_routers(self, client):
        endpoints = client.get("/api/v1/info").json()["endpoints"]
        assert endpoints["appointments"] == "/api/v1/appointments"
        assert endpoints["timeslots"] == "/api/v1/timeslots"

    def test_unknown_path(self, client):
        response = client.get("/api/v1/nope")
        assert response.status_code == 404
        assert response.json()["path"] == "/api/v1/nope"
