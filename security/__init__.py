"""Tamper-evident audit logging for security decisions."""
