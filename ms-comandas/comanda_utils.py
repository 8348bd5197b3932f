import base64
import json
import logging
import functools
from datetime import datetime
from decimal import Decimal

logger = logging.getLogger()


# ---------------------------
# Erros da API
# ---------------------------
class ApiError(Exception):
    status = 500

    def __init__(self, message, **extra):
        super().__init__(message)
        self.message = message
        self.extra = extra

    def to_body(self):
        body = {"message": self.message}
        body.update(self.extra)
        return body


class BadRequest(ApiError):
    status = 400


class NotFound(ApiError):
    status = 404


class Gone(ApiError):
    status = 410

    def to_body(self):
        # 410 devolve só o payload de expiração
        return dict(self.extra, message=self.message)


class InternalError(ApiError):
    status = 500


# ---------------------------
# Utils: limpeza de Decimals
# ---------------------------
def clean_decimals(obj):
    if isinstance(obj, list):
        return [clean_decimals(i) for i in obj]
    if isinstance(obj, dict):
        return {k: clean_decimals(v) for k, v in obj.items()}
    if isinstance(obj, Decimal):
        # se for inteiro, devolve int; senão, float
        return int(obj) if obj % 1 == 0 else float(obj)
    return obj


def _json_default(value):
    if isinstance(value, datetime):
        return value.isoformat()
    return str(value)


# ---------------------------
# Utils: respostas API Gateway
# ---------------------------
def response(status, body):
    body = clean_decimals(body)
    return {
        "statusCode": status,
        "headers": {
            "Content-Type": "application/json",
            "Access-Control-Allow-Origin": "*",
            "Access-Control-Allow-Headers": (
                "Content-Type,X-Amz-Date,Authorization,X-Api-Key,"
                "X-Amz-Security-Token"
            ),
            "Access-Control-Allow-Methods": "OPTIONS,GET,PATCH"
        },
        "body": json.dumps(body, ensure_ascii=False, default=_json_default)
    }


# ---------------------------
# Utils: leitura do evento
# ---------------------------
def path_param(event, name):
    value = (event.get("pathParameters") or {}).get(name)
    if value is None:
        return None
    value = str(value).strip()
    return value or None


def parse_body(event):
    """
    Lê o body JSON do evento. Floats viram Decimal,
    que é o que o DynamoDB aceita.
    """
    body = event.get("body")
    if body is None:
        return {}
    if isinstance(body, dict):
        return body
    if event.get("isBase64Encoded"):
        body = base64.b64decode(body).decode("utf-8")
    if not body.strip():
        return {}
    try:
        data = json.loads(body, parse_float=Decimal)
    except json.JSONDecodeError:
        raise BadRequest("JSON inválido.")
    if not isinstance(data, dict):
        raise BadRequest("O corpo da requisição deve ser um objeto JSON.")
    return data


def handle_api_errors(func):
    """Converte ApiError e exceções inesperadas em respostas JSON."""

    @functools.wraps(func)
    def wrapper(event, context, *args, **kwargs):
        try:
            return func(event, context, *args, **kwargs)
        except ApiError as e:
            if e.status >= 500:
                logger.error("%s: %s", type(e).__name__, e.to_body())
            else:
                logger.info("%s (%s): %s", type(e).__name__, e.status, e.message)
            return response(e.status, e.to_body())
        except Exception as e:
            logger.exception("Erro inesperado")
            return response(500, {"message": "Erro interno do servidor.", "error": str(e)})

    return wrapper
