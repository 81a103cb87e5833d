"""Delivery of backup archives through email and object storage."""
