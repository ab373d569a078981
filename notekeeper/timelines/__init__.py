"""Timeline notes and the serialized event-linking machinery."""
