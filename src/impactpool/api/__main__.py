# src/impactpool/api/__main__.py
from __future__ import annotations

import uvicorn

from impactpool.env import load_dotenv_if_present


def main() -> None:
    # Load .env early so IMPACTPOOL_* vars exist before anything reads them.
    load_dotenv_if_present()

    # Import after dotenv load (prevents "config read before env" surprises)
    from impactpool.api.app import create_app
    from impactpool.runtime.pool_config import load_pool_config

    cfg = load_pool_config()
    uvicorn.run(create_app(log_level=cfg.log_level), host=cfg.api_host, port=int(cfg.api_port), log_level=cfg.log_level.lower())


if __name__ == "__main__":
    main()
