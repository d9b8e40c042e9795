"""Benchmarks: task model, adapters and datasets."""
