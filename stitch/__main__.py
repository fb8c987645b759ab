"""Entry point for the Stitch CLI.

Allows running the orchestrator with ``python -m stitch``.
"""

from .cli import main

if __name__ == "__main__":  # pragma: no cover
    main()
