"""contractbot: query understanding for a contract and parts assistant."""

__version__ = "0.3.0"
