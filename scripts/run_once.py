#!/usr/bin/env python3
"""
One-off prompt script.

Usage:
    python scripts/run_once.py --prompt "Your question here"
    python scripts/run_once.py --prompt "Explain quantum computing" --opt temp=0.2
    echo "What is Python?" | python scripts/run_once.py
"""

import argparse
import asyncio
import logging
import sys
from pathlib import Path

# Add project root to path
sys.path.insert(0, str(Path(__file__).parent.parent))

from gpt4all_local.chat_cli import parse_options
from gpt4all_local.config import config
from gpt4all_local.gpt4all import GPT4All


async def run_once(bot: GPT4All, prompt: str, force_download: bool) -> str:
    await bot.init(force_download)
    try:
        print("Starting bot... (this may take a minute)", file=sys.stderr)
        await bot.open()
        return await bot.prompt(prompt)
    finally:
        bot.close()


def main():
    """Main entry point for one-off prompts."""
    parser = argparse.ArgumentParser(
        description="Send a single prompt to the local GPT4All model",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  python scripts/run_once.py --prompt "What is the meaning of life?"
  python scripts/run_once.py --prompt "Explain AI" --opt n_predict=128
  echo "What is Python?" | python scripts/run_once.py
        """,
    )

    parser.add_argument(
        "--prompt",
        type=str,
        default=None,
        help="The prompt to send (if not provided, reads from stdin)",
    )
    parser.add_argument(
        "--model", type=str, default=None, help=f"Model name (default: {config.MODEL})"
    )
    parser.add_argument(
        "--opt",
        action="append",
        metavar="KEY=VALUE",
        help="Decoder option passed to the executable (repeatable)",
    )
    parser.add_argument(
        "--force-download",
        action="store_true",
        help="Download the executable and model even if they already exist",
    )
    parser.add_argument("--verbose", action="store_true", help="Enable verbose logging")

    args = parser.parse_args()

    # Configure logging
    log_level = logging.DEBUG if args.verbose else logging.INFO
    logging.basicConfig(
        level=log_level, format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
    )
    logger = logging.getLogger(__name__)

    # Get prompt from args or stdin
    if args.prompt:
        prompt = args.prompt
    else:
        if sys.stdin.isatty():
            parser.error("No prompt provided. Use --prompt or pipe input via stdin")
        # The bot reads one line per prompt
        prompt = " ".join(sys.stdin.read().split())
        if not prompt:
            parser.error("Empty prompt provided")

    try:
        decoder_config = parse_options(args.opt)
    except ValueError as e:
        parser.error(str(e))

    logger.info(f"Prompt: {prompt[:100]}{'...' if len(prompt) > 100 else ''}")

    try:
        bot = GPT4All(model=args.model, decoder_config=decoder_config)
        output = asyncio.run(run_once(bot, prompt, args.force_download))

        print("-" * 60, file=sys.stderr)

        # Print output to stdout (clean, no prefix)
        print(output)

        logger.info("Prompt completed successfully")

    except KeyboardInterrupt:
        print("\n\nInterrupted by user", file=sys.stderr)
        sys.exit(130)

    except Exception as e:
        logger.error(f"Error: {e}", exc_info=args.verbose)
        print(f"\nError: {e}", file=sys.stderr)
        sys.exit(1)


if __name__ == "__main__":
    main()
