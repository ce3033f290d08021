"""Utility modules used internally by callrelay."""
