"""Arbor CLI: call-graph extraction and sink reachability audits."""

__version__ = "0.3.0"
