# src/revledger/api/__main__.py
from __future__ import annotations

import os

import uvicorn

from revledger.env import load_dotenv_if_present


def main() -> None:
    # Load .env early so REVLEDGER_* vars exist before anything reads them.
    load_dotenv_if_present()

    # Import after dotenv load (config is read from the environment).
    from revledger.api.app import create_app

    # create_app() boots the runtime, which exports the ledger config to the environment.
    app = create_app()
    host = os.getenv("REVLEDGER_API_HOST", "127.0.0.1")
    port = int(os.getenv("REVLEDGER_API_PORT", "8080"))

    uvicorn.run(app, host=host, port=port, log_level="info")


if __name__ == "__main__":
    main()
