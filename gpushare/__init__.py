"""GPU sharing configuration, MPS helpers and a node-label driven config manager."""

__version__ = "0.14.4"