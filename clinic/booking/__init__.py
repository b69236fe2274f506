from .orchestrator import BookingOrchestrator

__all__ = ["BookingOrchestrator"]
