"""Replicate skill - alternate image enhancement and video generation."""
from .replicate_client import ReplicateClient, extract_output_url

__all__ = ["ReplicateClient", "extract_output_url"]
