"""Bus route and stop discovery for transit route-listing sites."""

__version__ = "0.1.0"
