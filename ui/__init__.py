"""Local server and console helpers."""
