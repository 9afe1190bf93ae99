"""
spudverse.api.__main__ — ``python -m spudverse.api``
=====================================================
"""

from __future__ import annotations

import logging
import os

import uvicorn
from dotenv import load_dotenv

from spudverse.config import load_config


def main() -> None:
    load_dotenv()
    logging.basicConfig(
        level=os.getenv("LOG_LEVEL", "INFO").upper(),
        format="%(asctime)s │ %(levelname)-8s │ %(name)s │ %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )
    cfg = load_config()
    uvicorn.run("spudverse.api.main:app", host="0.0.0.0", port=cfg.api_port)


if __name__ == "__main__":
    main()
