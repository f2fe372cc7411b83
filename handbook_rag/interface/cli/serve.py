"""Run the HTTP API with uvicorn."""

import argparse

import uvicorn

from handbook_rag.config.logging import build_logging_config
from handbook_rag.config.settings import AppSettings


def main(argv: list[str] | None = None) -> None:
    parser = argparse.ArgumentParser(prog="handbook-serve")
    parser.add_argument("--host", default="127.0.0.1")
    parser.add_argument("--port", type=int, default=8000)
    parser.add_argument("--reload", action="store_true", help="Auto-reload on code changes (dev)")
    args = parser.parse_args(argv)

    settings = AppSettings()
    uvicorn.run(
        "handbook_rag.interface.http.api:app",
        host=args.host,
        port=args.port,
        reload=args.reload,
        log_config=build_logging_config(settings.log_level),
    )


if __name__ == "__main__":
    main()
