"""
Command line launcher for the call bridge.

Loads ``.env``, applies command line overrides to the environment that
BridgeSettings reads, refuses to start without an OpenAI key and then serves
``callbridge.main:app`` with uvicorn.

Usage:
    python run.py [--port PORT] [--host HOST] [--log-level LEVEL]
                  [--ws-host HOST] [--no-greeting] [--reload]
"""

import argparse
import os
import sys
from typing import List, Optional

import dotenv
import uvicorn

from callbridge.config.logging_config import configure_logging
from callbridge.config.settings import BridgeSettings

LOG_LEVELS = ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Bridge Twilio phone calls to the OpenAI Realtime API")
    server = parser.add_argument_group("server")
    server.add_argument("--port", type=int, default=int(os.getenv("PORT", "8000")), help="listen port (PORT)")
    server.add_argument("--host", default=os.getenv("HOST", "0.0.0.0"), help="bind address (HOST)")
    server.add_argument("--reload", action="store_true", help="restart on code changes")
    server.add_argument(
        "--log-level",
        type=str.upper,
        choices=LOG_LEVELS,
        default=os.getenv("LOG_LEVEL", "INFO").upper(),
        help="log level (LOG_LEVEL)",
    )

    call = parser.add_argument_group("calls")
    call.add_argument("--ws-host", help="public host put in the TwiML stream URL (WS_HOST)")
    call.add_argument("--no-greeting", action="store_true", help="wait for the caller to speak first")
    return parser


def apply_overrides(args: argparse.Namespace) -> None:
    """Export command line choices so BridgeSettings in callbridge.main sees them."""
    os.environ["LOG_LEVEL"] = args.log_level
    if args.ws_host:
        os.environ["WS_HOST"] = args.ws_host
    if args.no_greeting:
        os.environ["GREETING_ENABLED"] = "false"


def main(argv: Optional[List[str]] = None) -> int:
    dotenv.load_dotenv()
    args = build_parser().parse_args(argv)
    apply_overrides(args)
    logger = configure_logging(args.log_level)

    settings = BridgeSettings()
    if not settings.openai_api_key:
        logger.error("OPENAI_API_KEY is not set; the bridge cannot open Realtime sessions")
        return 1

    public_host = settings.ws_host or "<Host header of the webhook>"
    logger.info(f"Serving call bridge on {args.host}:{args.port}; Twilio streams to wss://{public_host}/media-stream")

    uvicorn.run(
        "callbridge.main:app",
        host=args.host,
        port=args.port,
        log_level=args.log_level.lower(),
        http="h11",
        access_log=False,
        reload=args.reload,
        ws_ping_interval=5,
        ws_ping_timeout=20,
        ws_max_size=16 * 1024 * 1024,
    )
    return 0


if __name__ == "__main__":
    sys.exit(main())
