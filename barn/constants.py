"""Fixed values consulted by the Barn commands.

Each group of constants belongs to exactly one command:
- init: the starter template repository.
- generate: default file and directory names.
- server: debug bind address and the farewell table.
"""

from __future__ import annotations

# barn init
STARTER_REPO_URL = "git@github.com:Maples7/barn.git"

# barn generate
CONFIG_FILE_NAME = "config.yml"
CONTENT_DIR = "content"
CONTENT_FILE_NAME = "index.md"
OUTPUT_DIR = "public"
LAYOUT_DIR = "layouts"
DEFAULT_LAYOUT = "default"
DEFAULT_CONCURRENCY = 4
STATE_DIR = ".barn"
MANIFEST_NAME = "manifest.json"

# barn server
DEBUG_HOST = "localhost"
DEBUG_PORT = 4000

# Read only; consulted by the server command, never by the generate pipeline.
FAREWELLS: tuple[str, ...] = (
    "Good bye",
    "See you again",
    "Farewell",
    "Have a nice day",
    "Bye!",
    "Catch you later",
)
