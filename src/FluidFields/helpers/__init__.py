"""Helper entry points for the field check runner."""
