from datetime import datetime, timezone

from comanda_settings import Settings, configure_logging
from comanda_store import COMANDAS, StoreError, default_store
from comanda_utils import response, handle_api_errors, InternalError

logger = configure_logging(Settings.from_env())

_OLDEST = datetime.min.replace(tzinfo=timezone.utc)


def list_comandas(store):
    try:
        comandas = store.list_all(COMANDAS)
    except StoreError as e:
        logger.exception("Erro ao buscar comandas")
        raise InternalError("Erro interno do servidor.", error=str(e))

    # mais recentes primeiro; sem createdAt vão para o fim
    comandas.sort(key=lambda c: c.get("createdAt") or _OLDEST, reverse=True)
    for comanda in comandas:
        for field in ("createdAt", "horarioLimite", "usedAt"):
            value = comanda.get(field)
            comanda[field] = value.isoformat() if value else None
    return comandas


@handle_api_errors
def lambda_handler(event, context, store=None):
    comandas = list_comandas(store or default_store())
    logger.info("%d comandas listadas", len(comandas))
    return response(200, comandas)
