"""cargo-fuzz entry point.

Supports: python -m cargo_fuzz
"""

from .app import main

if __name__ == "__main__":
    main()
