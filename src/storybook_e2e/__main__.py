"""Allow running as ``python -m storybook_e2e``."""

from .main import main

main()
