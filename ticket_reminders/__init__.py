"""Maintenance ticket reminder engine"""
