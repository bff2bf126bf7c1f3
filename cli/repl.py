"""REPL with prompt_toolkit for user interaction."""

import os
import shlex
import sys
from typing import Sequence

from prompt_toolkit import PromptSession
from prompt_toolkit.history import InMemoryHistory

from cli.commands import (
    handle_add_transcode,
    handle_metadata,
    handle_pin,
    handle_search,
    handle_transcode,
    handle_upload,
    handle_upload_dir,
    handle_video,
)
from cli.completer import VidSwarmCompleter
from cli.constants import (
    HELP_TEXT,
    RED,
    LOGO,
    PROMPT_TEXT,
    STYLE,
    WELCOME_HELP,
    WELCOME_TITLE,
)
from cli.models import (
    AddTranscodeCommand,
    MetadataCommand,
    PinCommand,
    SearchCommand,
    TranscodeCommand,
    UploadCommand,
    UploadDirCommand,
    VideoCommand,
)
from cli.parser import ParseError, parse_command


def clear_screen() -> None:
    """Clear the terminal screen (cross-platform)."""
    if sys.platform == "win32":
        os.system("cls")
    else:
        os.system("clear")


def show_logo() -> None:
    """Display VidSwarm logo with ANSI colors."""
    print(LOGO)


def dispatch_command(cmd_obj) -> str:
    """Dispatch parsed command to appropriate handler."""
    if isinstance(cmd_obj, UploadCommand):
        return handle_upload(cmd_obj)
    elif isinstance(cmd_obj, UploadDirCommand):
        return handle_upload_dir(cmd_obj)
    elif isinstance(cmd_obj, TranscodeCommand):
        return handle_transcode(cmd_obj)
    elif isinstance(cmd_obj, AddTranscodeCommand):
        return handle_add_transcode(cmd_obj)
    elif isinstance(cmd_obj, PinCommand):
        return handle_pin(cmd_obj)
    elif isinstance(cmd_obj, MetadataCommand):
        return handle_metadata(cmd_obj)
    elif isinstance(cmd_obj, VideoCommand):
        return handle_video(cmd_obj)
    elif isinstance(cmd_obj, SearchCommand):
        return handle_search(cmd_obj)
    else:
        return f"Unknown command type: {type(cmd_obj)}"


def run_once(argv: Sequence[str]) -> int:
    """Run a single command given on the command line; returns the exit code."""
    if list(argv) == ["help"]:
        print(HELP_TEXT)
        return 0
    try:
        cmd_obj = parse_command(shlex.join(argv))
    except ParseError as e:
        print(f"Error: {e}")
        return 2
    result = dispatch_command(cmd_obj)
    print(result)
    return 1 if result.startswith((f"{RED}Error", "Error")) else 0


def repl_loop() -> None:
    """Start interactive REPL with prompt_toolkit."""
    history = InMemoryHistory()
    session: PromptSession = PromptSession(
        completer=VidSwarmCompleter(), history=history, style=STYLE
    )

    clear_screen()
    show_logo()
    print(WELCOME_TITLE)
    print(WELCOME_HELP)

    while True:
        try:
            user_input = session.prompt([("class:prompt", PROMPT_TEXT)])

            if not user_input.strip():
                continue

            if user_input.strip() == "exit":
                print("Goodbye!")
                break

            if user_input.strip() == "help":
                print(HELP_TEXT)
                continue

            if user_input.strip() == "clear":
                clear_screen()
                show_logo()
                print(WELCOME_TITLE)
                print(WELCOME_HELP)
                continue

            cmd_obj = parse_command(user_input)
            result = dispatch_command(cmd_obj)
            print(result)

        except ParseError as e:
            print(f"Error: {e}")
        except KeyboardInterrupt:
            continue
        except EOFError:
            print("\nGoodbye!")
            break
