"""locktime: lock timer, history accounting and the relationship features around them."""

__version__ = "0.1.0"
