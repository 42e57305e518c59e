"""Tour booking backend: catalog, Stripe checkout and payment reconciliation."""

__version__ = "0.1.0"
