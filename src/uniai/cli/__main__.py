"""CLI entry point for uniai.cli module.

Enables execution via: python -m uniai.cli
"""

from uniai.cli.cleanup_tasks import main

if __name__ == "__main__":
    main()
