"""Subcommand dispatcher for memecompose.

Usage:
    memecompose compose source.mp4 --params params.yaml --output meme.mp4
    memecompose graph   --params params.yaml
    memecompose serve   --port 3000
"""

import argparse
import sys


def main(args=None):
    parser = argparse.ArgumentParser(
        prog="memecompose",
        description="Meme video composition: local rendering and HTTP service.",
    )
    subparsers = parser.add_subparsers(dest="command")

    # Register subcommands. Each delegates to its own main() in cli.py.
    subparsers.add_parser("compose", help="Render a meme video from a source clip")
    subparsers.add_parser("graph", help="Validate parameters and print the filter graph")
    subparsers.add_parser("serve", help="Run the HTTP service")

    # Parse only the subcommand name, pass the rest to the subcommand's parser.
    parsed, remaining = parser.parse_known_args(args)

    if parsed.command is None:
        parser.print_help()
        sys.exit(1)

    if parsed.command == "compose":
        from .cli import compose_main
        compose_main(remaining)
    elif parsed.command == "graph":
        from .cli import graph_main
        graph_main(remaining)
    elif parsed.command == "serve":
        from .cli import serve_main
        serve_main(remaining)


if __name__ == "__main__":
    main()
