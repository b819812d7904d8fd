"""Telegram side of the system: operator alerts and the operator bot."""
