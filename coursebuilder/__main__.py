"""
Package entry point.

Allows running the editor via:

    python -m coursebuilder

This simply forwards execution to coursebuilder.cli.main().
"""

from coursebuilder.cli import main

if __name__ == "__main__":
    main()
