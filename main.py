"""CLI entrypoint — serve an Office over HTTP.

    python main.py --factory myproject.office:build_office --port 8000

``--factory`` names a ``module:callable`` that returns an ``Office``.
"""

import argparse

from dotenv import load_dotenv

load_dotenv()  # Load .env into os.environ before anything else

import importlib
import os

import uvicorn

from officellm.app import create_app
from officellm.core.logging_core import configure_logging
from officellm.office import Office


def load_factory(target: str):
    module_name, _, attr = target.partition(":")
    if not module_name or not attr:
        raise SystemExit(f"--factory must look like 'module:callable', got {target!r}")
    return getattr(importlib.import_module(module_name), attr)


def build_app(factory_target: str):
    office = load_factory(factory_target)()
    if not isinstance(office, Office):
        raise SystemExit(f"{factory_target} returned {type(office).__name__}, expected Office")
    return create_app(office)


def main() -> None:
    parser = argparse.ArgumentParser(description="Run an officellm server")
    parser.add_argument("--factory", required=True, help="module:callable returning an Office")
    parser.add_argument("--host", default="0.0.0.0", help="Host to bind to")
    parser.add_argument("--port", type=int, default=8000, help="Port to bind to")
    parser.add_argument("--reload", action="store_true", help="Enable auto-reload")
    parser.add_argument("--log-level", default="info", help="Log level for the server and agents")
    args = parser.parse_args()

    configure_logging(args.log_level)
    print(f"Starting officellm on http://{args.host}:{args.port}")

    if args.reload:
        # uvicorn reload takes an import string; the factory target travels via the environment.
        os.environ["OFFICELLM_FACTORY"] = args.factory
        uvicorn.run(
            "main:reload_app",
            factory=True,
            host=args.host,
            port=args.port,
            reload=True,
            log_level=args.log_level.lower(),
        )
        return

    uvicorn.run(
        build_app(args.factory),
        host=args.host,
        port=args.port,
        log_level=args.log_level.lower(),
    )


def reload_app():
    return build_app(os.environ["OFFICELLM_FACTORY"])


if __name__ == "__main__":
    main()
