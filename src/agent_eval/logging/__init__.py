"""Run event logging."""
