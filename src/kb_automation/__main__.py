"""Allow ``python -m kb_automation``."""

from kb_automation.cli import main

main()
