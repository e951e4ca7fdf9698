"""Concrete adapters for the interfaces in ``election_updater.interfaces``."""
