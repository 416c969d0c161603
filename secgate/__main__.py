"""Main entry point for running secgate as a module.

Examples
--------
$ python -m secgate --help
$ python -m secgate policy
"""
from __future__ import annotations

from .main import main


if __name__ == "__main__":
    main()
