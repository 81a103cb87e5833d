"""Object storage uploaders for backup archives."""
