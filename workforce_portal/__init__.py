"""Workforce Portal — timesheet and expense approval engine."""
