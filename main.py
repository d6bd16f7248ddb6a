"""
Main entrypoint: FastAPI server, or one-shot cron jobs from the command line.

  python main.py                      serve the API (API_HOST, API_PORT)
  python main.py settle [--day DAY]   settle a UTC day (default: yesterday)
  python main.py publish-root         push the current rewards Merkle root on-chain

API-only: uvicorn backend_time26.api_server.app:app --host 0.0.0.0 --port 8000
"""

import argparse
import json
import os
import sys

# Configure structured JSON logging before other imports that may log
from backend_time26.time26_logging import get_logger

logger = get_logger("main")


def _serve() -> int:
    api_host = os.getenv("API_HOST", "0.0.0.0").strip()
    api_port = int(os.getenv("API_PORT", "8000").strip() or "8000")

    from backend_time26.api_server.app import app
    import uvicorn

    logger.info("main_server_starting", host=api_host, port=api_port)
    uvicorn.run(app, host=api_host, port=api_port, log_level=os.getenv("LOG_LEVEL", "info").lower())
    return 0


def _settle(day: str | None) -> int:
    from backend_time26.api_server.deps import get_services
    from backend_time26.database import init_db

    init_db()
    result = get_services().settlement.settle_day(day)
    print(json.dumps(result.to_dict(), indent=2))
    return 0


def _publish_root() -> int:
    from backend_time26.api_server.deps import get_services
    from backend_time26.database import init_db

    init_db()
    result = get_services().root_publisher.publish()
    print(json.dumps(result.to_dict(), indent=2))
    return 0


def main() -> int:
    parser = argparse.ArgumentParser(description="TIME26 reward engine.")
    sub = parser.add_subparsers(dest="command")
    sub.add_parser("serve", help="Run the HTTP API (default).")
    settle = sub.add_parser("settle", help="Settle daily drawing rewards.")
    settle.add_argument("--day", default=None, help="UTC day YYYY-MM-DD (default: yesterday).")
    sub.add_parser("publish-root", help="Publish the rewards Merkle root on-chain.")
    args = parser.parse_args()

    try:
        if args.command == "settle":
            return _settle(args.day)
        if args.command == "publish-root":
            return _publish_root()
        return _serve()
    except Exception as e:
        logger.exception("main_command_failed", command=args.command or "serve", error=str(e))
        return 1


if __name__ == "__main__":
    sys.exit(main())
