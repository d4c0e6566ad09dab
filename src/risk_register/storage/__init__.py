"""Persistence adapters for the Risk aggregate."""
