"""Coding-agent evaluation and orchestration engine."""
