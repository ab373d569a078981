"""Event notes: field parsing, acknowledgments and recurrence."""
