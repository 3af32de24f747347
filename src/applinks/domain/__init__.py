"""Adapter-free domain core of AppLinks."""
