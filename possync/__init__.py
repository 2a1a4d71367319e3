"""possync — offline-first order synchronization for the checkout terminal."""

__version__ = "1.0.0"
