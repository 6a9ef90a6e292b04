"""Prompt templates for enhancement and motion descriptions."""
