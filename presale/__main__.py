"""Allow ``python -m presale``."""

from presale.cli import main

if __name__ == "__main__":
    main()
