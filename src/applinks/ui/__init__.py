"""User interfaces for AppLinks."""
