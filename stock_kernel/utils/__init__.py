"""Utility modules for the stock kernel."""
