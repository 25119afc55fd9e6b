"""Main entry point for the shelfshare package."""

from shelfshare.cli import main

if __name__ == "__main__":
    main()
