"""Risk register: risk aggregate, lifecycle rules, and queries over the risk set."""

__version__ = "0.1.0"
