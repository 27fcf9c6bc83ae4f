"""Export the StakeLab OpenAPI schema for client generation."""

from __future__ import annotations

import json
import logging
import os
from pathlib import Path

from fastapi.encoders import jsonable_encoder

from stakelab.api.server import app
from stakelab.log import configure_logging

OUTPUT_PATH = Path("api_spec/openapi.json")
logger = logging.getLogger("stakelab.scripts.export_openapi")


def main() -> None:
    configure_logging()
    schema = app.openapi()
    public_base = os.getenv("PUBLIC_API_BASE_URL")
    if public_base:
        schema["servers"] = [{"url": public_base.rstrip("/")}]
    OUTPUT_PATH.parent.mkdir(parents=True, exist_ok=True)
    OUTPUT_PATH.write_text(json.dumps(jsonable_encoder(schema), indent=2))
    logger.info("OpenAPI schema written to %s", OUTPUT_PATH)


if __name__ == "__main__":  # pragma: no cover
    main()
