#!/usr/bin/env python
"""Stream an LLM completion over the ZelAI generation WebSocket.

Usage:
    ZELAI_API_KEY=zelai_pk_... python scripts/run_ws_demo.py "Write a haiku about tides"

Connection settings come from the environment (``ZELAI_*``), ``.env`` or
``config/zelai.yaml``; see ``zelai.config.ClientSettings``.
"""

from __future__ import annotations

import argparse
import asyncio
import logging
import sys
from pathlib import Path


def parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(description=__doc__, formatter_class=argparse.RawDescriptionHelpFormatter)
    parser.add_argument("prompt", help="Prompt sent to the LLM.")
    parser.add_argument("--system", default=None, help="Optional system prompt.")
    parser.add_argument(
        "--no-stream",
        action="store_true",
        help="Wait for the full completion instead of streaming chunks.",
    )
    return parser.parse_args()


async def run(args: argparse.Namespace) -> int:
    from zelai import ZelAIClient, ZelAIError, get_settings  # type: ignore
    from zelai.models import LlmRequest, LlmStreamRequest  # type: ignore

    settings = get_settings()
    try:
        async with ZelAIClient(settings) as client:
            if args.no_stream:
                response = await client.generate_llm(LlmRequest(prompt=args.prompt, system=args.system))
                print(response.result.text)
                return 0
            controller = await client.generate_llm_stream(
                LlmStreamRequest(prompt=args.prompt, system=args.system),
                on_chunk=lambda chunk: print(chunk, end="", flush=True),
            )
            response = await controller.wait()
            print()
            if response.result.tokens_used is not None:
                logging.getLogger(__name__).info("Tokens used: %s", response.result.tokens_used)
    except ZelAIError as exc:
        print(f"Request failed [{exc.code}]: {exc.message}", file=sys.stderr)
        return 1
    return 0


def main() -> None:
    repo_root = Path(__file__).resolve().parents[1]
    sys.path.insert(0, str(repo_root))

    # Lazy import after adjusting sys.path
    from zelai.config import get_settings  # type: ignore

    args = parse_args()
    settings = get_settings()
    logging.basicConfig(
        level=getattr(logging, settings.log_level.upper(), logging.INFO),
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    )
    raise SystemExit(asyncio.run(run(args)))


if __name__ == "__main__":
    main()
