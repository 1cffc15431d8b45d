"""cloudplane: cloud provider abstraction and resource-event streaming core."""

__version__ = "0.1.0"
