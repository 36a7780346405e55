"""Teleconsultation consultation-assignment service."""
