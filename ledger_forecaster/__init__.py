"""Ledger Forecaster: financial analytics and forecasting engine for a household ledger."""

__version__ = "0.1.0"
