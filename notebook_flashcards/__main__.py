"""Entry point for running notebook_flashcards as a module.

Usage:
    python -m notebook_flashcards <command> [options]
"""
from .cli import main

if __name__ == "__main__":
    raise SystemExit(main())
