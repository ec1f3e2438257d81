from .supervisor import PeriodicTask, SchedulerSupervisor

__all__ = ["PeriodicTask", "SchedulerSupervisor"]
