from . import artifacts, notifications, subscription

__all__ = ["artifacts", "notifications", "subscription"]
