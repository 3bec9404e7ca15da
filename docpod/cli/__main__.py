"""Allow ``python -m docpod.cli`` execution."""

from docpod.cli.commands import main

main()
