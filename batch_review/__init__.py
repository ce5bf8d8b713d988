"""
Batched, rate-limit-resilient pull request review.

Parses diffs into hunks, plans model-sized batches and drives them
through an LLM review port, recovering from rate limits and provider
failures without losing the run.
"""

__version__ = "1.0.0"
