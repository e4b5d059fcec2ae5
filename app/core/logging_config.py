import logging

from app.core.config import LOG_LEVEL

LOG_FORMAT = '%(asctime)s - %(name)s - %(levelname)s - %(message)s'


def setup_logging(level: str = LOG_LEVEL) -> None:
    """Configures the root logger once for the API process and the workers."""
    logging.basicConfig(level=getattr(logging, level.upper(), logging.INFO), format=LOG_FORMAT)

    # Client libraries are chatty at INFO (every request / metadata refresh)
    logging.getLogger('tortoise').setLevel(logging.INFO)
    logging.getLogger('aiokafka').setLevel(logging.WARNING)
    logging.getLogger('elastic_transport').setLevel(logging.WARNING)
