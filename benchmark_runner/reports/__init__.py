"""Markdown and JSON report writers."""

from .generator import REPORT_PREFIX, SUMMARY_PREFIX, ReportGenerator

__all__ = ["REPORT_PREFIX", "SUMMARY_PREFIX", "ReportGenerator"]
