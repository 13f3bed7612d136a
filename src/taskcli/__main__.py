"""Allow ``python -m taskcli``."""

from taskcli.cli import main

main()
