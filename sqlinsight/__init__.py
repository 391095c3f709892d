"""
SQL Insight - AI-assisted SQL Server query tuning and code review pipeline
"""

__version__ = "1.0.0"
__app_name__ = "SQL Insight"
