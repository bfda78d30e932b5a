"""Utility helpers for mdtasks."""
