"""Tanggap Darurat: disaster report intake over WhatsApp."""

__version__ = "0.1.0"
