"""
Backend Scripts Module

Available scripts:
    - run_notifications_once.py: One scheduler pass, for system cron

Usage:
    python -m scripts.run_notifications_once
"""
