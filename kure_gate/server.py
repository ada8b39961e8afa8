import uvicorn
import logging

from kure_gate.config.config import ServiceSettings, load_config
from kure_gate.core.app import create_app

logger = logging.getLogger(__name__)


def main():
    settings = ServiceSettings()
    logging.basicConfig(
        level=settings.log_level,
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
    )
    logger.info("Starting Kure Gate admission webhook...")

    app = create_app(load_config(settings.config_path))
    uvicorn.run(app, host=settings.host, port=settings.port)


if __name__ == "__main__":
    main()
