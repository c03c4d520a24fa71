"""Domain modules for the reminder sync."""
