"""Montime - alert evaluation and notification dispatch for server and uptime monitoring."""
