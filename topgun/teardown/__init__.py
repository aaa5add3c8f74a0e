from .coordinator import StepResult, TeardownCoordinator, TeardownReport

__all__ = ["StepResult", "TeardownCoordinator", "TeardownReport"]
