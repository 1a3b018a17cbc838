"""Console-script wrapper that reports a missing click install clearly."""

import sys


def main():
    try:
        from .cli import main as cli_main
    except ImportError:
        print(
            "Error: the treegraft command line requires the 'cli' extra.\n"
            "Install it with:  pip install treegraft[cli]",
            file=sys.stderr,
        )
        raise SystemExit(1)
    cli_main()
