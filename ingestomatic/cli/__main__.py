"""Module wrapper so running ``python -m ingestomatic.cli`` matches the console script."""

from ingestomatic.cli import main

if __name__ == "__main__":  # pragma: no cover
    main()
