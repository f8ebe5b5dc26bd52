#!/usr/bin/env python3
"""
Bertrand Arena - Main Launcher

Serve the repeated Bertrand pricing game: sessions, rounds, autopilot
settlement and the cross-session leaderboard.
"""

import argparse
import logging

from shared.config import AUTOPILOT_INTERVAL_SECONDS, LOG_LEVEL, MODELS


def list_models():
    """Print the models available to bot bidders."""
    print("\nAvailable bot models:")
    print("-" * 50)
    for model_id, (provider, name) in MODELS.items():
        print(f"  {model_id:20} - {provider} ({name})")
    print()


def configure_logging(level: str = LOG_LEVEL):
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


def main():
    parser = argparse.ArgumentParser(
        description="Bertrand Arena - repeated price competition with logit demand"
    )
    parser.add_argument(
        "--list-models", "-l",
        action="store_true",
        help="List models available to bot bidders"
    )
    parser.add_argument(
        "--host",
        default="0.0.0.0",
        help="Host to bind to (default: 0.0.0.0)"
    )
    parser.add_argument(
        "--port", "-p",
        type=int,
        default=8000,
        help="Port to run on (default: 8000)"
    )
    parser.add_argument(
        "--no-autopilot",
        action="store_true",
        help=f"Do not poll for expired rounds (default interval: {AUTOPILOT_INTERVAL_SECONDS:.0f}s)"
    )
    parser.add_argument(
        "--log-level",
        default=LOG_LEVEL,
        help=f"Logging level (default: {LOG_LEVEL})"
    )

    args = parser.parse_args()

    if args.list_models:
        list_models()
        return

    configure_logging(args.log_level)

    from bertrand.server import run
    print("\nStarting Bertrand Arena...")
    print(f"Server running at http://localhost:{args.port}")
    print("Press Ctrl+C to stop\n")
    run(host=args.host, port=args.port, autopilot=not args.no_autopilot)


if __name__ == "__main__":
    main()
