"""Request and response types of the PromptLens REST API."""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Dict, List, Optional


class ExpectationType(Enum):
    """Kinds of checks the remote service applies to a response."""
    CONTAINS = "contains"
    NOT_CONTAINS = "not_contains"
    REGEX = "regex"
    CALLBACK = "callback"


@dataclass
class PromptTemplate:
    """Prompt template with ``{{variable}}`` placeholders."""
    content: str
    variables: Dict[str, Any] = field(default_factory=dict)
    metadata: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {"content": self.content}
        if self.variables:
            data["variables"] = self.variables
        if self.metadata:
            data["metadata"] = self.metadata
        return data


@dataclass
class PromptExpectation:
    """Expected output pattern or validation rule."""
    type: ExpectationType
    value: Optional[str] = None
    # Called by PromptLensClient.test_prompt on the response; never sent over the wire
    validator: Optional[Callable[[Any], bool]] = None
    description: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {"type": self.type.value}
        if self.value is not None:
            data["value"] = self.value
        if self.description is not None:
            data["description"] = self.description
        return data


@dataclass
class PromptTestConfig:
    """Configuration of a single prompt test."""
    name: str
    description: Optional[str] = None
    tags: List[str] = field(default_factory=list)
    expectations: List[PromptExpectation] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {"name": self.name}
        if self.description is not None:
            data["description"] = self.description
        if self.tags:
            data["tags"] = list(self.tags)
        if self.expectations:
            data["expectations"] = [e.to_dict() for e in self.expectations]
        return data


@dataclass
class ExpectationResult:
    """Outcome of a single expectation."""
    passed: bool
    description: Optional[str] = None
    error: Optional[str] = None

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ExpectationResult":
        return cls(
            passed=bool(data.get("passed", False)),
            description=data.get("description"),
            error=data.get("error"),
        )


@dataclass
class PromptTestResult:
    """Result of a prompt test."""
    passed: bool
    execution_time_ms: float
    response: Any = None
    expectation_results: List[ExpectationResult] = field(default_factory=list)
    error: Optional[str] = None


@dataclass
class EvaluationCriteria:
    """
    Criterion for comparing A/B test responses.

    Only ``name`` and ``weight`` are sent; the remote service scores the
    responses. ``evaluator`` is kept for callers scoring locally and is
    never sent over the wire.
    """
    name: str
    weight: Optional[float] = None
    evaluator: Optional[Callable[[Any, Any], float]] = None

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {"name": self.name}
        if self.weight is not None:
            data["weight"] = self.weight
        return data


@dataclass
class ABTestConfig:
    """Configuration of a remote A/B test between two prompt templates."""
    name: str
    variant_a: PromptTemplate
    variant_b: PromptTemplate
    description: Optional[str] = None
    evaluation_criteria: List[EvaluationCriteria] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {
            "name": self.name,
            "variantA": self.variant_a.to_dict(),
            "variantB": self.variant_b.to_dict(),
        }
        if self.description is not None:
            data["description"] = self.description
        if self.evaluation_criteria:
            data["evaluationCriteria"] = [c.to_dict() for c in self.evaluation_criteria]
        return data
