"""Video generation skill - Veo long-running generation with bounded polling."""
from .generate_video import VeoService
from .polling import PollOutcome, PollResult, poll_until_done

__all__ = ["VeoService", "PollOutcome", "PollResult", "poll_until_done"]
