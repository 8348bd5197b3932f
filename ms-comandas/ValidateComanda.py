import json
from datetime import datetime, timezone

from comanda_settings import Settings, configure_logging
from comanda_store import COMANDAS, StoreError, default_store
from comanda_utils import response, path_param, handle_api_errors, BadRequest, NotFound, Gone, InternalError

logger = configure_logging(Settings.from_env())

DEFAULT_EXPIRED_MESSAGE = "O prazo para fazer o pedido com esta comanda já encerrou."


def validate_comanda(store, token, now=None):
    """
    Busca a comanda ativa do token e confere o horarioLimite.
    Devolve o documento (com id) ou levanta NotFound / Gone / InternalError.
    """
    token = token.strip().upper()
    try:
        comanda = store.query_one(COMANDAS, {"token": token, "isActive": True}, limit=1)
    except StoreError as e:
        logger.exception("Erro ao validar comanda %s", token)
        raise InternalError("Erro interno do servidor ao validar token.", error=str(e))

    if comanda is None:
        raise NotFound("Comanda inválida ou já utilizada.")

    # o store já devolve horarioLimite como datetime (ou None)
    limite = comanda.get("horarioLimite")
    if isinstance(limite, datetime):
        agora = now or datetime.now(timezone.utc)
        if agora > limite:
            logger.info("Comanda %s expirada (limite %s)", comanda["id"], limite.isoformat())
            raise Gone(comanda.get("mensagemAtraso") or DEFAULT_EXPIRED_MESSAGE, expired=True)

    return comanda


@handle_api_errors
def lambda_handler(event, context, store=None, now=None):
    logger.info("Request: %s", json.dumps(event.get("pathParameters") or {}))

    token = path_param(event, "token")
    if not token:
        raise BadRequest("Token não fornecido.")

    comanda = validate_comanda(store or default_store(), token, now=now)
    return response(200, comanda)
