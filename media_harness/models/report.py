from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from media_harness.errors import AssertionMismatch, HarnessError


@dataclass
class CheckResult:
    """Outcome of one artifact or playback check."""

    name: str
    passed: bool
    expected: Any
    actual: Any
    message: str = ""

    def to_dict(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "passed": self.passed,
            "expected": self.expected,
            "actual": self.actual,
            "message": self.message,
        }


@dataclass
class ValidationReport:
    checks: List[CheckResult] = field(default_factory=list)
    phases_completed: List[str] = field(default_factory=list)
    fatal: Optional[HarnessError] = None

    def record(self, check: CheckResult) -> CheckResult:
        self.checks.append(check)
        return check

    @property
    def failures(self) -> List[CheckResult]:
        return [c for c in self.checks if not c.passed]

    @property
    def passed(self) -> bool:
        return self.fatal is None and not self.failures

    def check(self, name: str) -> Optional[CheckResult]:
        for c in self.checks:
            if c.name == name:
                return c
        return None

    def raise_for_failures(self) -> None:
        """Re-raise the fatal error, or raise AssertionMismatch for failed checks."""
        if self.fatal is not None:
            raise self.fatal
        if self.failures:
            raise AssertionMismatch(self.failures)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "success": self.passed,
            "phases_completed": list(self.phases_completed),
            "fatal": str(self.fatal) if self.fatal else None,
            "fatal_type": type(self.fatal).__name__ if self.fatal else None,
            "checks": [c.to_dict() for c in self.checks],
        }
