"""
Testes para a listagem de comandas (GET /comandas)
"""

from ListComandas import lambda_handler
from conftest import body_of, client_error


class TestListagem:

    def test_ordena_por_criacao_desc(self, store):
        store.add("comandas", {"id": "a", "token": "F-AAAA", "createdAt": "2026-10-17T10:00:00+00:00"})
        store.add("comandas", {"id": "b", "token": "F-BBBB", "createdAt": {"seconds": 1792500000}})
        store.add("comandas", {"id": "c", "token": "F-CCCC"})
        store.add("comandas", {"id": "d", "token": "F-DDDD", "createdAt": "2026-10-18T10:00:00Z"})

        resp = lambda_handler({}, None, store=store)
        assert resp["statusCode"] == 200
        assert [c["id"] for c in body_of(resp)] == ["b", "d", "a", "c"]

    def test_timestamps_em_iso(self, store):
        store.add("comandas", {
            "id": "a",
            "createdAt": "2026-10-17T10:00:00-03:00",
            "horarioLimite": {"_seconds": 1792500000, "_nanoseconds": 0},
        })
        [data] = body_of(lambda_handler({}, None, store=store))
        assert data["createdAt"] == "2026-10-17T13:00:00+00:00"
        assert data["horarioLimite"] == "2026-10-20T12:40:00+00:00"
        assert data["usedAt"] is None

    def test_lista_vazia(self, store):
        resp = lambda_handler({}, None, store=store)
        assert resp["statusCode"] == 200
        assert body_of(resp) == []

    def test_erro_do_dynamodb(self, store):
        store.error = client_error("Scan", message="sem permissão")
        resp = lambda_handler({}, None, store=store)
        assert resp["statusCode"] == 500
        assert "sem permissão" in body_of(resp)["error"]
