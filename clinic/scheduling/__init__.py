from .manager import ScheduleManager

__all__ = ["ScheduleManager"]
