from comanda_settings import Settings, configure_logging
from comanda_store import COMANDAS, StoreError, coerce_deadline, default_store
from comanda_utils import response, path_param, parse_body, handle_api_errors, BadRequest, InternalError

logger = configure_logging(Settings.from_env())

# campos que o admin não pode alterar
IMMUTABLE_FIELDS = ("id",)


def update_comanda(store, comanda_id, updates):
    """
    Atualização parcial: só os campos enviados mudam.
    Devolve a comanda relida do banco depois da escrita.
    """
    updates = {k: v for k, v in updates.items() if k not in IMMUTABLE_FIELDS}
    if not updates:
        raise BadRequest("Nenhum campo para atualizar.")

    if "token" in updates:
        # o GET busca sempre em maiúsculas
        token = updates["token"]
        if not isinstance(token, str) or not token.strip():
            raise BadRequest("token inválido.")
        updates["token"] = token.strip().upper()

    if "horarioLimite" in updates:
        try:
            updates["horarioLimite"] = coerce_deadline(updates["horarioLimite"])
        except ValueError as e:
            raise BadRequest(str(e))

    try:
        store.update_by_id(COMANDAS, comanda_id, updates)
        comanda = store.get_by_id(COMANDAS, comanda_id)
    except StoreError as e:
        logger.exception("Erro ao atualizar comanda %s", comanda_id)
        raise InternalError("Erro interno do servidor.", error=str(e))

    if comanda is None:
        # apagada entre o update e a releitura
        raise InternalError("Erro interno do servidor.",
                            error=f"Comanda {comanda_id} não encontrada após atualização.")
    return comanda


@handle_api_errors
def lambda_handler(event, context, store=None):
    comanda_id = path_param(event, "id")
    if not comanda_id:
        raise BadRequest("ID da comanda não fornecido.")

    updates = parse_body(event)
    logger.info("PATCH comanda %s campos=%s", comanda_id, sorted(updates))

    comanda = update_comanda(store or default_store(), comanda_id, updates)
    return response(200, {
        "message": "Comanda atualizada com sucesso.",
        "data": comanda
    })
