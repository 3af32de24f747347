"""Adapters connecting the AppLinks domain to HTTP, storage and the platform."""
