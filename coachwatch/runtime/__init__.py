from .scheduler import SchedulerState, SurveillanceScheduler

__all__ = ["SchedulerState", "SurveillanceScheduler"]
