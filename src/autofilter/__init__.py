"""autofilter: search, filter-state and ephemeral delivery engine for a media catalog bot."""

__version__ = "0.1.0"
