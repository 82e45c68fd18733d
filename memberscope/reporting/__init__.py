"""
memberscope Reporting Module
============================

Rendering and export of resolution results.

Components:
- report_builder.py: Console tables, text report, CSV and JSON export
- visualization.py: Interactive membership graph using pyvis

Design Philosophy:
- The flat record list is rendered the same way in every format
- Visualizations are interactive HTML
"""

from .report_builder import ReportBuilder, generate_text_report, format_member_table, write_csv
from .visualization import MembershipVisualizer
