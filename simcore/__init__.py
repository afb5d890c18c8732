"""SimCore - simulation pipeline with solver plugins and a provenance ledger."""

__version__ = "0.1.0"
