"""Entry point for ``python -m ssg_zero``."""

from .cli import main

if __name__ == "__main__":  # pragma: no cover
    main()
