"""Eligibility matching and scoring engine for clinical trials."""

__version__ = "0.1.0"
