import os
import logging

BACKENDS = ("resource", "client")


class Settings:
    """Configuração do serviço de comandas, lida das variáveis de ambiente."""

    def __init__(self, table_name="Comandas", token_index="token-index",
                 backend="resource", endpoint_url=None, region_name=None,
                 log_level="INFO"):
        self.table_name = table_name
        self.token_index = token_index
        self.backend = backend
        self.endpoint_url = endpoint_url
        self.region_name = region_name
        self.log_level = log_level

    @classmethod
    def from_env(cls, environ=None):
        env = os.environ if environ is None else environ
        return cls(
            table_name=env.get("COMANDAS_TABLE", "Comandas"),
            token_index=env.get("COMANDAS_TOKEN_INDEX", "token-index"),
            backend=env.get("COMANDAS_STORE_BACKEND", "resource").strip().lower(),
            endpoint_url=env.get("DYNAMODB_ENDPOINT_URL") or None,
            region_name=env.get("AWS_REGION") or None,
            log_level=env.get("LOG_LEVEL", "INFO").upper(),
        )

    def boto3_kwargs(self):
        kwargs = {}
        if self.endpoint_url:
            kwargs["endpoint_url"] = self.endpoint_url
        if self.region_name:
            kwargs["region_name"] = self.region_name
        return kwargs


def configure_logging(settings):
    # Lambda já instala um handler no root logger; só ajusta o nível
    logger = logging.getLogger()
    logger.setLevel(getattr(logging, settings.log_level, logging.INFO))
    return logger
