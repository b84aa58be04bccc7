"""ORM models for subscriptions, credit usage and artifacts."""
