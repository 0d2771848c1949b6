"""Insulin pump simulation models: profiles, glucose readings, insulin delivery and pump state."""

__version__ = "1.0.0"
__all__ = ["profilemodel", "glucosemodel", "insulinmodel", "pumpmodel"]