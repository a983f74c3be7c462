"""Serve the nanlang API: ``python -m backend.app [--host H] [--port P]``."""

import argparse

import uvicorn

from .main import app


def main() -> None:
    p = argparse.ArgumentParser(description="Serve the nanlang HTTP API")
    p.add_argument("--host", default="127.0.0.1")
    p.add_argument("--port", type=int, default=8000)
    p.add_argument("--log-level", default="info")
    ns = p.parse_args()
    uvicorn.run(app, host=ns.host, port=ns.port, log_level=ns.log_level)


if __name__ == "__main__":
    main()
