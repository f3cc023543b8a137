from abc import ABC, abstractmethod


class IEfficiencyPolicy(ABC):
    name: str

    @abstractmethod
    def compute(
        self,
        work_seconds: float,
        stoppage_while_on_seconds: float,
        elapsed_seconds: float,
    ) -> float:
        """Efficiency as a ratio. Zero when the denominator is zero."""
        pass


class WorkVsStoppageOnPolicy(IEfficiencyPolicy):
    """Share of powered time spent working."""

    name = "work_vs_stoppage_on"

    def compute(
        self,
        work_seconds: float,
        stoppage_while_on_seconds: float,
        elapsed_seconds: float,
    ) -> float:
        denominator = work_seconds + stoppage_while_on_seconds
        return work_seconds / denominator if denominator > 0 else 0.0


class WorkVsElapsedPolicy(IEfficiencyPolicy):
    name = "work_vs_elapsed"

    def compute(
        self,
        work_seconds: float,
        stoppage_while_on_seconds: float,
        elapsed_seconds: float,
    ) -> float:
        return work_seconds / elapsed_seconds if elapsed_seconds > 0 else 0.0


class ExpectedWorkTimePolicy(IEfficiencyPolicy):
    """Work time against a fixed expected working day. Can exceed 1."""

    name = "expected_work_time"

    def __init__(self, expected_daily_work_hours: float = 8.0):
        self.expected_daily_work_hours = expected_daily_work_hours

    def compute(
        self,
        work_seconds: float,
        stoppage_while_on_seconds: float,
        elapsed_seconds: float,
    ) -> float:
        expected = self.expected_daily_work_hours * 3600
        return work_seconds / expected if expected > 0 else 0.0


class EfficiencyPolicyFactory:
    @staticmethod
    def create(name: str, expected_daily_work_hours: float = 8.0) -> IEfficiencyPolicy:
        if name == WorkVsStoppageOnPolicy.name:
            return WorkVsStoppageOnPolicy()
        elif name == WorkVsElapsedPolicy.name:
            return WorkVsElapsedPolicy()
        elif name == ExpectedWorkTimePolicy.name:
            return ExpectedWorkTimePolicy(expected_daily_work_hours)
        else:
            raise ValueError(f"Unsupported efficiency policy: {name}")
