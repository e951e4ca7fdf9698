"""Allow ``python -m election_updater.cli`` execution."""

from election_updater.cli.update import main

main()
