"""Event recurrence and timeline link synchronization for tagged-line notes."""
