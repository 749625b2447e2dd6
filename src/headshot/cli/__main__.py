"""CLI entry point for headshot.cli module.

Enables execution via: python -m headshot.cli
"""

from headshot.cli.poll_generation import main

if __name__ == "__main__":
    main()
