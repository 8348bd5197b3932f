"""
Fixtures compartilhadas dos testes das lambdas de comandas
"""

import json
from datetime import datetime, timezone

import pytest
from botocore.exceptions import ClientError

from comanda_store import ComandaStore, DocumentNotFound

NOW = datetime(2026, 10, 19, 12, 0, tzinfo=timezone.utc)


class FakeStore(ComandaStore):
    """Store em memória; herda a materialização do ComandaStore real"""

    def __init__(self):
        super().__init__()
        self.docs = {}
        self.error = None
        self.calls = []

    def add(self, collection, doc):
        self.docs.setdefault(collection, {})[doc["id"]] = dict(doc)

    def raw(self, collection, doc_id):
        return self.docs[collection][doc_id]

    def _maybe_fail(self, operation):
        self.calls.append(operation)
        if self.error is not None:
            raise self.error

    def _query(self, collection, filters, limit):
        self._maybe_fail("query")
        found = [
            dict(doc) for doc in self.docs.get(collection, {}).values()
            if all(doc.get(k) == v for k, v in filters.items())
        ]
        return found[:limit]

    def _get(self, collection, doc_id):
        self._maybe_fail("get")
        doc = self.docs.get(collection, {}).get(doc_id)
        return dict(doc) if doc else None

    def _update(self, collection, doc_id, fields):
        self._maybe_fail("update")
        docs = self.docs.get(collection, {})
        if doc_id not in docs:
            raise DocumentNotFound(f"Documento {doc_id} não existe em {collection}.")
        for field, value in fields.items():
            if value is None:
                docs[doc_id].pop(field, None)
            else:
                docs[doc_id][field] = value

    def _scan(self, collection):
        self._maybe_fail("scan")
        return [dict(doc) for doc in self.docs.get(collection, {}).values()]


def client_error(operation="Query", code="InternalServerError", message="boom"):
    return ClientError({"Error": {"Code": code, "Message": message}}, operation)


def make_event(path=None, body=None):
    event = {"pathParameters": path, "headers": {"Content-Type": "application/json"}}
    if body is not None:
        event["body"] = body if isinstance(body, str) else json.dumps(body)
    return event


def body_of(resp):
    return json.loads(resp["body"])


@pytest.fixture
def store():
    return FakeStore()


@pytest.fixture
def comanda(store):
    doc = {
        "id": "c1",
        "token": "F-AB12",
        "isActive": True,
        "guestName": "Maria",
        "cabin": "Cabana 3",
        "numberOfGuests": 2,
        "createdAt": "2026-10-18T10:00:00+00:00",
    }
    store.add("comandas", doc)
    return doc
