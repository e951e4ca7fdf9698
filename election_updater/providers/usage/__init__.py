"""Token-usage logger providers."""

from election_updater.providers.usage.store_usage_logger import StoreUsageLogger, estimate_cost

__all__ = ["StoreUsageLogger", "estimate_cost"]
