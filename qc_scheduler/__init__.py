"""
QC Tracker Backend

Due-date scheduling and compliance tracking for recurring quality-control
worksheets on medical imaging equipment.
"""

__version__ = "1.0.0"
