"""Allow ``python -m chaz``."""

from chaz.cli import main

main()
