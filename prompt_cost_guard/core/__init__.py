"""
Core modules for Prompt Cost Guard.

This package contains pricing, the budget ledger, approval and alerting, and
the prompt optimization pipeline (strategies, compression, templates, quality
scoring).
"""
