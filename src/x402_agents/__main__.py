import logging

import uvicorn

from x402_agents.app import create_app
from x402_agents.config import load_config

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)


def main() -> None:
    config = load_config()
    app = create_app(config)
    logger.info(
        "x402 server running on port %d, payment address %s",
        config.port,
        config.server_address,
    )
    uvicorn.run(app, host="0.0.0.0", port=config.port)


if __name__ == "__main__":
    main()
