"""Thin entry point for the recallhook-mcp console script.

Routes to mcp_server.py, which is installed as a top-level module next to
the recallhook package (or sits at the repo root in a checkout).
"""

import os
import sys


def main():
    """Launch the recallhook MCP server."""
    # In a checkout mcp_server.py lives one level up from scripts/
    repo_root = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))
    if os.path.isfile(os.path.join(repo_root, "mcp_server.py")):
        sys.path.insert(0, repo_root)
    try:
        from mcp_server import main as server_main
    except ImportError as exc:
        print(f"Error: cannot import mcp_server ({exc}).", file=sys.stderr)
        print("Install the package (pip install recallhook) or run from the repository root.",
              file=sys.stderr)
        sys.exit(1)
    server_main()


if __name__ == "__main__":
    main()
