"""Pendency lifecycle core of the Arara operations console."""
