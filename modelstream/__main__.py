"""Stream one turn from the configured provider and print it.

Usage:
    python -m modelstream "Say hello" [--config modelstream.yaml]
        [--provider openai] [--model gpt-4.1] [--instructions "..."]
"""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
import os
import sys
from typing import Optional

from .client import ModelClient
from .config_loader import ENV_CONFIG_PATH, build_client_config, load_config
from .core.exceptions import ModelStreamError
from .logging.setup import setup_logging
from .types.events import Completed, OutputItemDone
from .types.items import message_text
from .types.prompt import Prompt

logger = logging.getLogger("modelstream")


def parse_args(argv: Optional[list[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        prog="modelstream",
        description="Stream a single model turn and print its items.",
    )
    parser.add_argument("text", help="User message to send")
    parser.add_argument("--config", default=None, help="Path to the YAML config file")
    parser.add_argument("--env-file", default=None, help="Path to a .env file for substitution")
    parser.add_argument("--provider", default=None, help="Provider name from model_providers")
    parser.add_argument("--model", default=None, help="Model id override")
    parser.add_argument("--instructions", default="", help="System instructions")
    parser.add_argument("--log-level", default=None, help="Logging level (default: INFO)")
    return parser.parse_args(argv)


def format_item(item: dict) -> str:
    if item.get("type") == "message":
        return message_text(item)
    return json.dumps(item, ensure_ascii=False)


async def run(args: argparse.Namespace) -> int:
    config_path = args.config or os.getenv(ENV_CONFIG_PATH)
    config = load_config(config_path, env_path=args.env_file) if config_path else {}
    resolved = build_client_config(config, provider=args.provider, model=args.model)
    prompt = Prompt.from_user_text(args.text, instructions=args.instructions)

    async with ModelClient.from_config(resolved) as client:
        stream = await client.stream(prompt)
        async with stream:
            async for event in stream:
                if isinstance(event, OutputItemDone):
                    print(format_item(event.item), flush=True)
                elif isinstance(event, Completed):
                    print(f"[completed: {event.response_id or '<no id>'}]", flush=True)
    return 0


def main(argv: Optional[list[str]] = None) -> int:
    args = parse_args(argv)
    setup_logging(args.log_level)
    try:
        return asyncio.run(run(args))
    except ModelStreamError as exc:
        logger.error("%s", exc.message)
        return 1
    except KeyboardInterrupt:
        return 130


if __name__ == "__main__":
    sys.exit(main())
