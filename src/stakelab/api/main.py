"""CLI entrypoint to run the StakeLab FastAPI server."""

from __future__ import annotations

import os

import uvicorn

from stakelab.config import get_settings
from stakelab.db.database import init_db
from stakelab.log import configure_logging


def main() -> None:
    configure_logging(get_settings().log_level)
    init_db()
    port = int(os.getenv("PORT", "8000"))
    uvicorn.run("stakelab.api.server:app", host="0.0.0.0", port=port, reload=False, log_config=None)


if __name__ == "__main__":  # pragma: no cover
    main()
