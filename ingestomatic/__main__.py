"""
Module entry-point so ``python -m ingestomatic`` behaves like the
``ingestomatic-cli`` console script.
"""

from ingestomatic.cli import main

if __name__ == "__main__":  # pragma: no cover
    main()
