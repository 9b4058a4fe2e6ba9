"""Allow ``python -m crashbridge``."""

from crashbridge.daemon import main

if __name__ == "__main__":
    main()
