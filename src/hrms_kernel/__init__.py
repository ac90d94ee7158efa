"""Statutory payroll and attendance computation kernel."""

__version__ = "1.0.0"
