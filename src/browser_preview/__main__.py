"""Allow running as ``python -m browser_preview``."""

from .cli import main

if __name__ == "__main__":
    main()
