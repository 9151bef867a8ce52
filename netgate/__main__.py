"""Allow `python -m netgate`."""

from .main import main

main()
