"""CLI constants and configuration."""

from prompt_toolkit.styles import Style

COMMANDS = [
    "upload", "upload-dir", "transcode", "add-transcode", "pin", "metadata",
    "video", "search", "clear", "exit", "help",
]

# Commands whose arguments are local paths
FILE_COMMANDS = ("upload", "add-transcode")
DIRECTORY_COMMANDS = ("upload-dir",)

STYLE = Style.from_dict(
    {
        "prompt": "#7B4DFF bold",
        "command": "#0088ff bold",
    }
)

VIOLET = "\033[38;2;123;77;255m"
GREEN = "\033[32m"
RED = "\033[31m"
RESET = "\033[0m"

LOGO = f"""{VIOLET}
 __   __ _      _  ___
 \\ \\ / /(_) __| |/ __| __ __ __ __ _  _ _  _ __
  \\ V / | |/ _` |\\__ \\ \\ V  V // _` || '_|| '  \\
   \\_/  |_|\\__,_||___/  \\_/\\_/ \\__,_||_|  |_|_|_|
{RESET}"""

WELCOME_TITLE = "VidSwarm CLI - upload, pin and transcode videos over IPFS"
WELCOME_HELP = "Type 'help' for commands or 'exit' to quit.\n"

PROMPT_TEXT = "vidswarm> "

HELP_TEXT = """Available commands:
  upload <file...>                    Upload files to the local IPFS node
  upload-dir <directory>              Upload a directory and print its root hash
  transcode <hash> [author]           Ask the transcoder to transcode an uploaded file
  add-transcode <file...>             Upload files, then transcode the first one
  pin <hash> [size]                   Ask the transcoder to pin a file
  metadata <hash>                     Fetch media metadata from the transcoder
  video <id>                          Show a video record from the metadata index
  search key=value...                 Search the metadata index (owner, keyword, offset, limit, staked)
  clear                               Clear screen and redisplay welcome message
  help                                Show this help
  exit                                Exit REPL

Examples:
  upload videos/clip.mp4
  add-transcode videos/clip.mp4
  transcode QmTkuJTcQhtRFkiGRe1DqTq2dJ3hhD3FPa4ve5YjN8TuP3 0xa99dBd162ad5E1601E8d8B20703e5A3bA5c00Be7
  pin QmTkuJTcQhtRFkiGRe1DqTq2dJ3hhD3FPa4ve5YjN8TuP3
  search owner=0xa99dBd162ad5E1601E8d8B20703e5A3bA5c00Be7 limit=5"""

SEARCH_KEYS = ("owner", "keyword", "offset", "limit", "staked")
