"""HTTP-level tests: routing, status mapping and JSON shapes."""

import pytest
from fastapi.testclient import TestClient

import main
from service_codes import OccurrenceCodeService
from service_occurrences import OccurrenceService


@pytest.fixture
def client(
    monkeypatch: pytest.MonkeyPatch,
    occurrence_service: OccurrenceService,
    code_service: OccurrenceCodeService,
) -> TestClient:
    monkeypatch.setattr(main, "occ_svc", occurrence_service)
    monkeypatch.setattr(main, "code_svc", code_service)
    return TestClient(main.app)


def post_occurrence(client: TestClient, nro_nf: int = 100, **overrides):
    body = {
        "code": 5,
        "description": "Tentativa de entrega",
        "sent_at": "2025-01-01T10:05:00Z",
        "event_at": "2025-01-01T10:00:00Z",
    }
    body.update(overrides)
    return client.post(f"/notas-fiscais/{nro_nf}/ocorrencias", json=body)


class TestOccurrenceRoutes:
    def test_create(self, client: TestClient) -> None:
        response = post_occurrence(client)

        assert response.status_code == 201
        body = response.json()
        assert body["invoice_number"] == 100
        assert body["status"] == "waiting"

    def test_create_duplicate(self, client: TestClient) -> None:
        assert post_occurrence(client).status_code == 201

        response = post_occurrence(client)

        assert response.status_code == 409
        assert post_occurrence(client, event_at="2025-01-01T10:00:01Z").status_code == 201

    def test_create_unknown_invoice(self, client: TestClient) -> None:
        response = post_occurrence(client, nro_nf=12345)

        assert response.status_code == 404
        assert "12345" in response.json()["detail"]

    def test_create_naive_timestamp(self, client: TestClient) -> None:
        response = post_occurrence(client, event_at="2025-01-01T10:00:00")
        assert response.status_code == 400

    @pytest.mark.parametrize(
        "overrides",
        [
            {"code": 0},
            {"code": "abc"},
            {"event_at": "not-a-date"},
            {"latitude": 91},
            {"status": "lost"},
            {"proof_url": "not a url"},
        ],
    )
    def test_create_invalid_body(self, client: TestClient, overrides: dict) -> None:
        assert post_occurrence(client, **overrides).status_code == 422

    def test_statistics_empty(self, client: TestClient) -> None:
        response = client.get("/notas-fiscais/99999/ocorrencias/stats")

        assert response.status_code == 200
        assert response.json() == {
            "total": 0,
            "first": None,
            "last": None,
            "currentStatusText": "Sem ocorrências",
            "isFinalized": False,
            "byCode": [],
            "timeline": [],
        }

    def test_statistics(self, client: TestClient) -> None:
        post_occurrence(client, code=1, description="Em trânsito", event_at="2025-01-01T08:00:00Z")
        post_occurrence(client, code=4, description="Entregue", event_at="2025-01-01T12:00:00Z")

        stats = client.get("/notas-fiscais/100/ocorrencias/stats").json()

        assert stats["total"] == 2
        assert stats["currentStatusText"] == "Entregue"
        assert stats["isFinalized"] is True
        assert stats["last"]["code"] == 4
        assert stats["first"]["code"] == 1
        assert [o["code"] for o in stats["timeline"]] == [1, 4]

    def test_list(self, client: TestClient) -> None:
        for minute in range(3):
            post_occurrence(client, event_at=f"2025-01-01T10:0{minute}:00Z")

        body = client.get("/notas-fiscais/100/ocorrencias", params={"page": 1, "limit": 2}).json()

        assert len(body["items"]) == 2
        assert body["items"][0]["event_at"].startswith("2025-01-01T10:02:00")
        assert body["pagination"] == {
            "page": 1,
            "limit": 2,
            "total": 3,
            "totalPages": 2,
            "hasNext": True,
            "hasPrev": False,
        }

    @pytest.mark.parametrize("params", [{"page": 0}, {"limit": 0}, {"limit": 101}])
    def test_list_bad_pagination(self, client: TestClient, params: dict) -> None:
        response = client.get("/notas-fiscais/100/ocorrencias", params=params)
        assert response.status_code == 422

    def test_last(self, client: TestClient) -> None:
        assert client.get("/notas-fiscais/100/ocorrencias/ultima").status_code == 404

        post_occurrence(client, code=1, event_at="2025-01-01T08:00:00Z")
        post_occurrence(client, code=5, event_at="2025-01-01T09:00:00Z")

        response = client.get("/notas-fiscais/100/ocorrencias/ultima")
        assert response.status_code == 200
        assert response.json()["code"] == 5

    def test_by_code(self, client: TestClient) -> None:
        post_occurrence(client, code=5)

        response = client.get("/notas-fiscais/100/ocorrencias/codigo/5")
        assert response.status_code == 200
        assert response.json()["total"] == 1

        assert client.get("/notas-fiscais/100/ocorrencias/codigo/4").status_code == 404
        assert client.get("/notas-fiscais/100/ocorrencias/codigo/abc").status_code == 400

    def test_update_and_delete(self, client: TestClient) -> None:
        created = post_occurrence(client).json()
        url = f"/notas-fiscais/100/ocorrencias/{created['id']}"

        response = client.put(url, json={"status": "finished"})
        assert response.status_code == 200
        assert response.json()["status"] == "finished"

        assert client.put(url, json={"code": 9}).status_code == 422
        assert client.put(
            f"/notas-fiscais/200/ocorrencias/{created['id']}", json={"status": "running"}
        ).status_code == 400

        assert client.delete(url).status_code == 200
        assert client.delete(url).status_code == 404

def batch_body(*targets):
    return {
        "ocorrencias": [
            {
                "nro_nf": nro_nf,
                "code": 5,
                "description": "Tentativa de entrega",
                "sent_at": "2025-01-01T10:05:00Z",
                "event_at": event_at,
            }
            for nro_nf, event_at in targets
        ]
    }


class TestBatchRoute:
    def test_all_created(self, client: TestClient) -> None:
        response = client.post(
            "/ocorrencias/lote",
            json=batch_body((100, "2025-01-01T10:00:00Z"), (200, "2025-01-01T10:00:00Z")),
        )

        assert response.status_code == 200
        assert response.json()["summary"] == {"processed": 2, "created": 2, "errors": 0}

    def test_partial_failure(self, client: TestClient) -> None:
        post_occurrence(client, event_at="2025-01-01T10:00:00Z")

        response = client.post(
            "/ocorrencias/lote",
            json=batch_body(
                (100, "2025-01-01T11:00:00Z"),
                (100, "2025-01-01T10:00:00Z"),
                (12345, "2025-01-01T10:00:00Z"),
            ),
        )

        assert response.status_code == 206
        body = response.json()
        assert body["summary"] == {"processed": 3, "created": 1, "errors": 2}
        assert [d["status"] for d in body["details"]] == ["success", "error", "error"]
        assert client.get("/notas-fiscais/100/ocorrencias/stats").json()["total"] == 2

    def test_too_many_items(self, client: TestClient) -> None:
        targets = [(100, f"2025-01-01T10:00:{i % 60:02d}Z") for i in range(201)]

        response = client.post("/ocorrencias/lote", json=batch_body(*targets))

        assert response.status_code == 422
        assert client.get("/notas-fiscais/100/ocorrencias/stats").json()["total"] == 0

    def test_empty_or_malformed(self, client: TestClient) -> None:
        assert client.post("/ocorrencias/lote", json={"ocorrencias": []}).status_code == 422
        assert client.post("/ocorrencias/lote", json=[]).status_code == 422



class TestCodeRoutes:
    def test_crud(self, client: TestClient) -> None:
        body = {
            "code": 4,
            "description": "Entregue",
            "tipo": "entrega",
            "processo": "finalizacao",
            "finalizadora": True,
        }
        created = client.post("/codigo-ocorrencias", json=body)
        assert created.status_code == 201
        code_id = created.json()["id"]

        assert client.post("/codigo-ocorrencias", json=body).status_code == 409
        assert client.get(f"/codigo-ocorrencias/{code_id}").json()["code"] == 4
        assert client.get("/codigo-ocorrencias/codigo/4").json()["id"] == code_id
        assert client.get("/codigo-ocorrencias/codigo/7").status_code == 404

        updated = client.put(f"/codigo-ocorrencias/{code_id}", json={"api": False})
        assert updated.json()["api"] is False

        listing = client.get("/codigo-ocorrencias", params={"tipo": "entrega"}).json()
        assert listing["pagination"]["total"] == 1

        assert client.delete(f"/codigo-ocorrencias/{code_id}").status_code == 200
        assert client.get(f"/codigo-ocorrencias/{code_id}").status_code == 404

    def test_enum_listings(self, client: TestClient) -> None:
        assert "ocorrencia" in client.get("/codigo-ocorrencias/tipos").json()
        assert "cancelamento" in client.get("/codigo-ocorrencias/processos").json()

    def test_invalid_tipo(self, client: TestClient) -> None:
        response = client.post(
            "/codigo-ocorrencias",
            json={"code": 8, "description": "Avariado", "tipo": "problema", "processo": "transporte"},
        )
        assert response.status_code == 422

    def test_statistics(self, client: TestClient) -> None:
        client.post(
            "/codigo-ocorrencias",
            json={"code": 4, "description": "Entregue", "tipo": "entrega",
                  "processo": "finalizacao", "finalizadora": True},
        )

        stats = client.get("/codigo-ocorrencias/stats").json()

        assert stats["total"] == 1
        assert stats["finalizadoras"] == 1
        assert stats["byTipo"]["entrega"] == 1


class TestHealth:
    def test_health_ok(self, client: TestClient, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setattr(main.occ_repo, "ping", lambda: None)
        assert client.get("/health").json() == {"ok": True}

    def test_health_db_down(self, client: TestClient, monkeypatch: pytest.MonkeyPatch) -> None:
        def fail() -> None:
            raise ConnectionError("connection refused")

        monkeypatch.setattr(main.occ_repo, "ping", fail)

        response = client.get("/health")
        assert response.status_code == 500
        assert "connection refused" in response.json()["detail"]
