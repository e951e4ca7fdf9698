"""Command-line entry points for the election updater.

- ``python -m election_updater.cli run`` -- the daily update
- ``python -m election_updater.cli refresh-counties`` -- county refresh only
- ``python -m election_updater.cli seed-baseline PARTY`` -- snapshot a baseline
- ``python -m election_updater.cli errors`` -- show a day's error summary
"""
