"""Custom completer for VidSwarm CLI with local path autocompletion."""

import os
from typing import Iterable

from prompt_toolkit.completion import Completer, Completion
from prompt_toolkit.document import Document

from cli.constants import COMMANDS, DIRECTORY_COMMANDS, FILE_COMMANDS


class VidSwarmCompleter(Completer):
    """
    Custom completer that provides:
    - Command name completion for the first token
    - Local path completion for commands taking files or a directory
    """

    def get_completions(
        self, document: Document, complete_event
    ) -> Iterable[Completion]:
        """
        Generate completions based on cursor position and context.
        """
        text = document.text_before_cursor
        tokens = text.split()
        is_typing_new_token = text.endswith(" ") or not tokens

        if not tokens or (len(tokens) == 1 and not is_typing_new_token):
            yield from self._complete_commands(tokens[0] if tokens else "")
            return

        command = tokens[0].lower()
        if command not in FILE_COMMANDS and command not in DIRECTORY_COMMANDS:
            return

        current_word = "" if is_typing_new_token else tokens[-1]
        yield from self._complete_paths(current_word, directories_only=command in DIRECTORY_COMMANDS)

    def _complete_commands(self, partial: str) -> Iterable[Completion]:
        """Complete command names matching the partial input."""
        partial_lower = partial.lower()
        for cmd in COMMANDS:
            if cmd.startswith(partial_lower):
                yield Completion(cmd, start_position=-len(partial))

    def _complete_paths(self, partial: str, directories_only: bool) -> Iterable[Completion]:
        """
        Complete entries of the directory named by the partial path.

        Directories get a trailing separator so completion can continue into them.
        """
        directory, prefix = os.path.split(partial)
        search_dir = os.path.expanduser(directory) if directory else "."

        try:
            names = sorted(os.listdir(search_dir))
        except OSError:
            return

        for name in names:
            if not name.startswith(prefix) or (name.startswith(".") and not prefix.startswith(".")):
                continue
            is_dir = os.path.isdir(os.path.join(search_dir, name))
            if directories_only and not is_dir:
                continue
            candidate = os.path.join(directory, name) if directory else name
            if is_dir:
                candidate += os.sep
            yield Completion(candidate, start_position=-len(partial))
