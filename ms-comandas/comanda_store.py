import logging
import functools
from datetime import datetime, timedelta, timezone
from decimal import Decimal

import boto3
from boto3.dynamodb.conditions import Key, Attr
from boto3.dynamodb.types import TypeSerializer, TypeDeserializer
from botocore.exceptions import ClientError, BotoCoreError

from comanda_settings import Settings

logger = logging.getLogger()

COMANDAS = "comandas"
ID_FIELD = "id"
TIMESTAMP_FIELDS = ("horarioLimite", "createdAt", "usedAt")


class StoreError(Exception):
    pass


class DocumentNotFound(StoreError):
    pass


# ---------------------------
# Timestamps
# ---------------------------
def _as_utc(value):
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def _parse_iso(text):
    text = text.strip()
    if text.endswith("Z"):
        text = text[:-1] + "+00:00"
    try:
        return _as_utc(datetime.fromisoformat(text))
    except ValueError:
        return None


def decode_deadline(value):
    """
    Normaliza um timestamp armazenado para datetime UTC.

    Aceita datetime, string ISO-8601, mapa com ``seconds``/``nanoseconds``
    (ou ``_seconds``/``_nanoseconds``, formato de documentos exportados) e
    número em segundos desde a epoch. Qualquer outra coisa devolve None.
    """
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, datetime):
        return _as_utc(value)
    if isinstance(value, str):
        return _parse_iso(value)
    try:
        if isinstance(value, dict):
            seconds = value.get("seconds", value.get("_seconds"))
            if seconds is None:
                return None
            nanos = value.get("nanoseconds", value.get("_nanoseconds")) or 0
            return (datetime.fromtimestamp(int(seconds), tz=timezone.utc)
                    + timedelta(microseconds=int(nanos) // 1000))
        if isinstance(value, (int, float, Decimal)):
            return datetime.fromtimestamp(float(value), tz=timezone.utc)
    except (TypeError, ValueError, OverflowError, OSError):
        return None
    return None


def encode_deadline(value):
    return _as_utc(value).isoformat()


def coerce_deadline(value):
    """
    Converte o horarioLimite recebido no PATCH para datetime.
    None ou "" apagam o prazo. Levanta ValueError se não der para converter.
    """
    if value is None or value == "":
        return None
    if isinstance(value, bool):
        raise ValueError(f"horarioLimite inválido: {value!r}")
    if isinstance(value, (int, float, Decimal)):
        # número vindo do cliente = milissegundos (Date do JS)
        try:
            return datetime.fromtimestamp(float(value) / 1000, tz=timezone.utc)
        except (ValueError, OverflowError, OSError):
            raise ValueError(f"horarioLimite inválido: {value!r}")
    deadline = decode_deadline(value)
    if deadline is None:
        raise ValueError(f"horarioLimite inválido: {value!r}")
    return deadline


def encode_value(value):
    """datetime -> ISO, float -> Decimal (recursivo)."""
    if isinstance(value, dict):
        return {k: encode_value(v) for k, v in value.items()}
    if isinstance(value, list):
        return [encode_value(v) for v in value]
    if isinstance(value, datetime):
        return encode_deadline(value)
    if isinstance(value, float):
        return Decimal(str(value))
    return value


def build_update_expression(fields, id_field=ID_FIELD):
    """
    Monta um UpdateExpression seguro (placeholders para nomes e valores).
    Campos com valor None vão para REMOVE.
    """
    expr_names, expr_values, sets, removes = {"#pk": id_field}, {}, [], []
    for idx, (field, value) in enumerate(fields.items(), start=1):
        name_key = f"#f{idx}"
        expr_names[name_key] = field
        if value is None:
            removes.append(name_key)
            continue
        value_key = f":v{idx}"
        expr_values[value_key] = encode_value(value)
        sets.append(f"{name_key} = {value_key}")
    parts = []
    if sets:
        parts.append("SET " + ", ".join(sets))
    if removes:
        parts.append("REMOVE " + ", ".join(removes))
    return " ".join(parts), expr_names, expr_values


# ---------------------------
# Store base
# ---------------------------
class ComandaStore:
    """
    Acesso ao banco de documentos.

    Subclasses implementam ``_query``, ``_get``, ``_update`` e ``_scan``
    devolvendo itens crus; aqui os erros do backend viram StoreError e os
    documentos são materializados (id no payload, timestamps decodificados).
    """

    id_field = ID_FIELD

    def __init__(self, tables=None, indexes=None):
        self.tables = dict(tables or {})
        self.indexes = dict(indexes or {})

    def table_name(self, collection):
        return self.tables.get(collection, collection)

    def index_for(self, collection, filters):
        indexed = self.indexes.get(collection) or {}
        for field in filters:
            if field in indexed:
                return indexed[field], field
        return None, None

    def materialize(self, item):
        doc = {k: v for k, v in item.items() if k != self.id_field}
        for field in TIMESTAMP_FIELDS:
            if field in doc:
                decoded = decode_deadline(doc[field])
                if decoded is None and doc[field] is not None:
                    logger.warning("Timestamp %s ilegível no documento %s: %r",
                                   field, item.get(self.id_field), doc[field])
                doc[field] = decoded
        return {self.id_field: item.get(self.id_field), **doc}

    def _call(self, operation, *args):
        try:
            return operation(*args)
        except (ClientError, BotoCoreError) as e:
            raise StoreError(str(e)) from e

    def query_one(self, collection, filters, limit=1):
        items = self._call(self._query, collection, dict(filters), max(int(limit), 1))
        if not items:
            return None
        return self.materialize(items[0])

    def get_by_id(self, collection, doc_id):
        item = self._call(self._get, collection, doc_id)
        if not item:
            return None
        return self.materialize(item)

    def update_by_id(self, collection, doc_id, fields):
        fields = {k: v for k, v in fields.items() if k != self.id_field}
        if not fields:
            return
        self._call(self._update, collection, doc_id, fields)

    def list_all(self, collection):
        return [self.materialize(item) for item in self._call(self._scan, collection)]

    def _query(self, collection, filters, limit):
        raise NotImplementedError

    def _get(self, collection, doc_id):
        raise NotImplementedError

    def _update(self, collection, doc_id, fields):
        raise NotImplementedError

    def _scan(self, collection):
        raise NotImplementedError


def _paginate(operation, kwargs, limit=None):
    # segue LastEvaluatedKey até juntar `limit` itens ou acabar a tabela
    found = []
    while True:
        resp = operation(**kwargs)
        found.extend(resp.get("Items", []))
        if limit is not None and len(found) >= limit:
            return found[:limit]
        last_key = resp.get("LastEvaluatedKey")
        if not last_key:
            return found
        kwargs = dict(kwargs, ExclusiveStartKey=last_key)


def _is_missing_item(error):
    return error.response.get("Error", {}).get("Code") == "ConditionalCheckFailedException"


# ---------------------------
# DynamoDB (resource / Table)
# ---------------------------
class DynamoTableStore(ComandaStore):
    def __init__(self, dynamodb, tables=None, indexes=None):
        super().__init__(tables, indexes)
        self.dynamodb = dynamodb

    def _table(self, collection):
        return self.dynamodb.Table(self.table_name(collection))

    def _query(self, collection, filters, limit):
        table = self._table(collection)
        index, key_field = self.index_for(collection, filters)
        kwargs = {}
        filter_expr = None
        for field, value in filters.items():
            if field == key_field:
                continue
            cond = Attr(field).eq(encode_value(value))
            filter_expr = cond if filter_expr is None else filter_expr & cond
        if filter_expr is not None:
            kwargs["FilterExpression"] = filter_expr
        if index:
            kwargs["IndexName"] = index
            kwargs["KeyConditionExpression"] = Key(key_field).eq(encode_value(filters[key_field]))
            return _paginate(table.query, kwargs, limit)
        return _paginate(table.scan, kwargs, limit)

    def _get(self, collection, doc_id):
        resp = self._table(collection).get_item(Key={self.id_field: doc_id})
        return resp.get("Item")

    def _update(self, collection, doc_id, fields):
        update_expr, expr_names, expr_values = build_update_expression(fields, self.id_field)
        kwargs = {
            "Key": {self.id_field: doc_id},
            "UpdateExpression": update_expr,
            "ExpressionAttributeNames": expr_names,
            "ConditionExpression": "attribute_exists(#pk)",
        }
        if expr_values:
            kwargs["ExpressionAttributeValues"] = expr_values
        try:
            self._table(collection).update_item(**kwargs)
        except ClientError as e:
            if _is_missing_item(e):
                raise DocumentNotFound(f"Documento {doc_id} não existe em {collection}.") from e
            raise

    def _scan(self, collection):
        return _paginate(self._table(collection).scan, {})


# ---------------------------
# DynamoDB (client de baixo nível)
# ---------------------------
class DynamoClientStore(ComandaStore):
    def __init__(self, client, tables=None, indexes=None):
        super().__init__(tables, indexes)
        self.client = client
        self._serializer = TypeSerializer()
        self._deserializer = TypeDeserializer()

    def _marshal(self, value):
        return self._serializer.serialize(encode_value(value))

    def _unmarshal(self, item):
        return {k: self._deserializer.deserialize(v) for k, v in item.items()}

    def _query(self, collection, filters, limit):
        index, key_field = self.index_for(collection, filters)
        kwargs = {"TableName": self.table_name(collection)}
        expr_names, expr_values, conditions = {}, {}, []
        key_condition = None
        for idx, (field, value) in enumerate(filters.items()):
            expr_names[f"#k{idx}"] = field
            expr_values[f":k{idx}"] = self._marshal(value)
            expr = f"#k{idx} = :k{idx}"
            if field == key_field:
                key_condition = expr
            else:
                conditions.append(expr)
        if expr_names:
            kwargs["ExpressionAttributeNames"] = expr_names
            kwargs["ExpressionAttributeValues"] = expr_values
        if conditions:
            kwargs["FilterExpression"] = " AND ".join(conditions)
        if index:
            kwargs["IndexName"] = index
            kwargs["KeyConditionExpression"] = key_condition
            items = _paginate(self.client.query, kwargs, limit)
        else:
            items = _paginate(self.client.scan, kwargs, limit)
        return [self._unmarshal(item) for item in items]

    def _get(self, collection, doc_id):
        resp = self.client.get_item(
            TableName=self.table_name(collection),
            Key={self.id_field: self._marshal(doc_id)},
        )
        item = resp.get("Item")
        return self._unmarshal(item) if item else None

    def _update(self, collection, doc_id, fields):
        update_expr, expr_names, expr_values = build_update_expression(fields, self.id_field)
        kwargs = {
            "TableName": self.table_name(collection),
            "Key": {self.id_field: self._marshal(doc_id)},
            "UpdateExpression": update_expr,
            "ExpressionAttributeNames": expr_names,
            "ConditionExpression": "attribute_exists(#pk)",
        }
        if expr_values:
            kwargs["ExpressionAttributeValues"] = {
                k: self._serializer.serialize(v) for k, v in expr_values.items()
            }
        try:
            self.client.update_item(**kwargs)
        except ClientError as e:
            if _is_missing_item(e):
                raise DocumentNotFound(f"Documento {doc_id} não existe em {collection}.") from e
            raise

    def _scan(self, collection):
        items = _paginate(self.client.scan, {"TableName": self.table_name(collection)})
        return [self._unmarshal(item) for item in items]


# ---------------------------
# Construção a partir da config
# ---------------------------
def build_store(settings):
    tables = {COMANDAS: settings.table_name}
    indexes = {COMANDAS: {"token": settings.token_index}}
    if settings.backend == "resource":
        dynamodb = boto3.resource("dynamodb", **settings.boto3_kwargs())
        return DynamoTableStore(dynamodb, tables, indexes)
    if settings.backend == "client":
        client = boto3.client("dynamodb", **settings.boto3_kwargs())
        return DynamoClientStore(client, tables, indexes)
    raise ValueError(f"COMANDAS_STORE_BACKEND inválido: {settings.backend!r}")


@functools.lru_cache(maxsize=None)
def default_store():
    # um store por container Lambda, reaproveitado entre invocações
    settings = Settings.from_env()
    logger.info("Store de comandas: backend=%s tabela=%s", settings.backend, settings.table_name)
    return build_store(settings)
