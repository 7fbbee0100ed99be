"""Token-budgeted conversation windowing and compaction for LLM chat."""

__version__ = "0.1.0"
