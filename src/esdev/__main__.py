"""Allow running as ``python -m esdev``."""

from esdev.cli import main

main()
