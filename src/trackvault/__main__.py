"""Main entry point for the trackvault CLI.

Usage:
    python -m trackvault --help
    trackvault --help  # If installed via pip/uv
"""

from trackvault.cli import main

if __name__ == "__main__":
    main()
