"""
Interactive CLI chat with the local GPT4All bot, using a Rich UI.

Provides a REPL with:
- Markdown rendering of responses
- Persistent input history with search (Ctrl+R)
- Auto-suggestions from previous prompts
- Commands for restarting the bot and inspecting its resource usage
"""

import argparse
import asyncio
import logging
import sys
from typing import Dict, List, Optional

from prompt_toolkit import PromptSession
from prompt_toolkit.auto_suggest import AutoSuggestFromHistory
from prompt_toolkit.formatted_text import HTML
from prompt_toolkit.history import FileHistory
from rich.console import Console
from rich.logging import RichHandler
from rich.markdown import Markdown
from rich.panel import Panel
from rich.table import Table

from .config import config
from .exceptions import GPT4AllError
from .gpt4all import GPT4All

logger = logging.getLogger(__name__)


def parse_options(pairs: Optional[List[str]]) -> Dict[str, str]:
    """
    Turn ``key=value`` strings into a decoder configuration.

    Args:
        pairs: Values collected from repeated ``--opt`` flags

    Returns:
        Ordered mapping of option names to values

    Raises:
        ValueError: If a pair has no ``=`` or an empty key
    """
    options: Dict[str, str] = {}
    for pair in pairs or []:
        key, sep, value = pair.partition("=")
        key = key.strip().lstrip("-")
        if not sep or not key:
            raise ValueError(f"Expected key=value, got {pair!r}")
        options[key] = value.strip()
    return options


def clear_interrupt() -> None:
    """Let the current task keep running after a Ctrl-C cancellation."""
    task = asyncio.current_task()
    # Task.uncancel() only exists on Python 3.11+
    if task is not None and hasattr(task, "uncancel"):
        task.uncancel()


class RichChatCLI:
    """Interactive chat REPL on top of a running bot."""

    def __init__(self, bot: GPT4All, history_file: str = None, prompt_session=None):
        """
        Initialize the chat CLI.

        Args:
            bot: An opened GPT4All instance
            history_file: Path to file for persistent input history
            prompt_session: Input session to read from (built when omitted)
        """
        self.bot = bot
        self.console = Console()
        self.transcript: List[Dict[str, str]] = []
        self.session = prompt_session or PromptSession(
            history=FileHistory(history_file or config.HISTORY_FILE),
            auto_suggest=AutoSuggestFromHistory(),
            enable_history_search=True,
        )

    def print_welcome(self):
        options = ", ".join(f"{k}={v}" for k, v in self.bot.decoder_config.items()) or "defaults"
        welcome_text = f"""
# GPT4All Chat

**Model**: {self.bot.model}
**Decoder options**: {options}

- Type your message and press **Enter** to send
- Press **Ctrl+R** to search history
- Type `/help` for available commands
        """
        self.console.print(
            Panel(
                Markdown(welcome_text),
                title="[bold blue]Welcome[/bold blue]",
                border_style="blue",
                padding=(1, 2),
            )
        )
        self.console.print()

    def print_help(self):
        help_text = """
| Command | Description |
|---------|-------------|
| `/help`, `/h` | Show this help message |
| `/restart` | Restart the bot (clears its conversation) |
| `/history` | Show this session's exchanges |
| `/stats` | Show the bot's memory and CPU usage |
| `/exit`, `/quit`, `/q` | Exit the chat |
        """
        self.console.print(
            Panel(
                Markdown(help_text),
                title="[bold green]Help[/bold green]",
                border_style="green",
                padding=(1, 2),
            )
        )
        self.console.print()

    def print_history(self):
        if not self.transcript:
            self.console.print("[yellow]No conversation history yet.[/yellow]\n")
            return

        history_text = ""
        for i, msg in enumerate(self.transcript, 1):
            content = msg["content"]
            if len(content) > 100:
                content = content[:97] + "..."
            history_text += f"{i}. **[{msg['role'].upper()}]** {content}\n\n"

        self.console.print(
            Panel(
                Markdown(history_text),
                title="[bold cyan]History[/bold cyan]",
                border_style="cyan",
                padding=(1, 2),
            )
        )
        self.console.print()

    async def print_stats(self):
        stats = await self.bot.session.process_stats()
        if not stats:
            self.console.print("[yellow]Bot is not running.[/yellow]\n")
            return

        table = Table(title="Bot process", show_header=False)
        table.add_column("Metric", style="cyan")
        table.add_column("Value")
        table.add_row("PID", str(stats["pid"]))
        table.add_row("Status", stats["status"])
        table.add_row("Memory", f"{stats['memory_mb']:.1f} MB")
        table.add_row("CPU", f"{stats['cpu_percent']:.1f}%")
        table.add_row("Uptime", f"{stats['uptime_seconds']:.0f}s")
        self.console.print(table)
        self.console.print()

    async def restart(self):
        try:
            with self.console.status("[cyan]Restarting bot...", spinner="dots"):
                await self.bot.open()
        except GPT4AllError as e:
            logger.error(f"Restart failed: {e}")
            self.console.print(f"[red]✗ Restart failed: {e}[/red]\n")
            return
        self.transcript = []
        self.console.print("[green]✓ Bot restarted[/green]\n")

    async def handle_command(self, command: str) -> bool:
        """
        Handle special commands.

        Args:
            command: The command string (including /)

        Returns:
            True if should exit, False otherwise
        """
        cmd = command.lower().strip().split(maxsplit=1)[0]

        if cmd in ["/exit", "/quit", "/q"]:
            self.console.print("\n[yellow]Goodbye![/yellow]\n")
            return True
        elif cmd in ["/help", "/h"]:
            self.print_help()
        elif cmd == "/restart":
            await self.restart()
        elif cmd == "/history":
            self.print_history()
        elif cmd == "/stats":
            await self.print_stats()
        else:
            self.console.print(f"[red]✗ Unknown command: {cmd}[/red]")
            self.console.print("Type [green]/help[/green] for available commands\n")
        return False

    async def respond(self, user_input: str) -> Optional[str]:
        """Send one prompt and render the response."""
        try:
            with self.console.status("[cyan]Thinking...", spinner="dots"):
                response = await self.bot.prompt(user_input)
        except asyncio.CancelledError:
            # Ctrl-C under asyncio.run cancels the main task mid-generation
            clear_interrupt()
            self.console.print(
                "\n[yellow]⚠ Generation interrupted. "
                "Restarting the bot to drop the partial answer.[/yellow]"
            )
            await self.restart()
            return None
        except GPT4AllError as e:
            logger.error(f"Prompt failed: {e}")
            self.console.print(f"[red]✗ Error during generation: {e}[/red]\n")
            return None

        self.console.print(
            Panel(
                Markdown(response.strip() or "_(empty response)_"),
                title="[bold green]Assistant[/bold green]",
                border_style="green",
                padding=(1, 2),
            )
        )
        self.console.print()
        return response

    async def run(self):
        """Start the interactive chat loop."""
        self.print_welcome()
        prompt_text = HTML("<ansiblue><b>You</b></ansiblue> <ansicyan>➜</ansicyan> ")

        while True:
            try:
                user_input = (await self.session.prompt_async(prompt_text)).strip()

                if not user_input:
                    continue

                if user_input.startswith("/"):
                    if await self.handle_command(user_input):
                        break
                    continue

                self.transcript.append({"role": "user", "content": user_input})
                response = await self.respond(user_input)
                if response is not None:
                    self.transcript.append({"role": "assistant", "content": response})

            except KeyboardInterrupt:
                self.console.print(
                    "\n[yellow]⚠ Interrupted. Type /exit to quit or continue chatting.[/yellow]\n"
                )
                continue

            except EOFError:
                self.console.print("\n[yellow]Goodbye![/yellow]\n")
                break


async def run_chat(bot: GPT4All, force_download: bool, history_file: str) -> None:
    """Provision, start, chat, and always stop the bot."""
    console = Console()
    console.print("[cyan]Checking model files...[/cyan]")
    await bot.init(force_download)

    try:
        with console.status("[cyan]Starting bot...", spinner="dots", spinner_style="cyan"):
            await bot.open()
        await RichChatCLI(bot, history_file=history_file).run()
    finally:
        bot.close()


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Interactive chat with a local GPT4All model")
    parser.add_argument(
        "--model", type=str, default=None, help=f"Model name (default: {config.MODEL})"
    )
    parser.add_argument(
        "--force-download",
        action="store_true",
        help="Download the executable and model even if they already exist",
    )
    parser.add_argument(
        "--opt",
        action="append",
        metavar="KEY=VALUE",
        help="Decoder option passed to the executable as --KEY VALUE (repeatable)",
    )
    parser.add_argument(
        "--history-file",
        type=str,
        default=config.HISTORY_FILE,
        help=f"File to store input history (default: {config.HISTORY_FILE})",
    )
    parser.add_argument(
        "--verbose",
        "-v",
        action="store_true",
        help="Show detailed technical logs for debugging",
    )
    return parser


def main():
    """Main entry point for the chat CLI."""
    parser = build_parser()
    args = parser.parse_args()

    log_level = logging.DEBUG if args.verbose else logging.WARNING
    logging.basicConfig(
        level=log_level,
        format="%(message)s",
        handlers=[RichHandler(rich_tracebacks=True, show_time=False, show_path=False)],
    )

    console = Console()

    try:
        decoder_config = parse_options(args.opt)
    except ValueError as e:
        parser.error(str(e))

    try:
        bot = GPT4All(model=args.model, decoder_config=decoder_config)
        asyncio.run(run_chat(bot, args.force_download, args.history_file))

    except KeyboardInterrupt:
        console.print("\n[yellow]⚠ Interrupted. Exiting...[/yellow]")
        sys.exit(0)

    except Exception as e:
        logger.error(f"Failed to start chat: {e}")
        console.print(f"\n[red]✗ Error: {e}[/red]")
        sys.exit(1)


if __name__ == "__main__":
    main()
