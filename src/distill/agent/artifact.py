"""分析产物模型

模型最终回答解析出的结构化产物。每个字段都有安全默认值，
即使只修复出部分内容，产物也总是结构完整的。
线路格式使用 camelCase；bugfix / modification 专用段落作为可选字段保留。
"""

from __future__ import annotations

from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field, ValidationInfo, field_validator, model_validator
from pydantic.alias_generators import to_camel

Severity = Literal["low", "medium", "high"]

PARSE_FAILURE_RISK = {
    "description": "Could not parse structured response",
    "severity": "high",
    "mitigation": "Review the raw analysis output manually",
}


class ArtifactModel(BaseModel):
    """产物模型基类：camelCase 别名，保留未知字段，忽略 null 值"""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="allow")

    @model_validator(mode="before")
    @classmethod
    def _drop_nulls(cls, data: Any) -> Any:
        if isinstance(data, dict):
            return {k: v for k, v in data.items() if v is not None}
        return data


class FileToCreate(ArtifactModel):
    path: str
    description: str = ""
    suggested_code: str | None = None


class FileChange(ArtifactModel):
    location: str = ""
    action: str = "modify"
    """add / modify / remove"""
    description: str = ""
    reason: str = ""
    before_code: str | None = None
    after_code: str | None = None


class FileToModify(ArtifactModel):
    path: str
    changes: list[FileChange] = Field(default_factory=list)


class CodeExample(ArtifactModel):
    description: str = ""
    value: str = ""


class FunctionToCreate(ArtifactModel):
    name: str = ""
    signature: str = ""
    description: str = ""
    location: str = ""
    file: str | None = None
    line_to_insert: str | None = None
    implementation: str | None = None
    input_example: CodeExample | None = None
    output_example: CodeExample | None = None
    why_this_approach: str | None = None

    @model_validator(mode="after")
    def _default_location(self) -> FunctionToCreate:
        if not self.location and self.file:
            self.location = self.file
        return self


class ImplementationStep(ArtifactModel):
    order: int = 0
    title: str = ""
    description: str = ""
    rationale: str | None = None
    files: list[str] = Field(default_factory=list)
    code_example: str | None = None


class EdgeCase(ArtifactModel):
    scenario: str = ""
    expected_behavior: str = ""
    input: str | None = None
    implementation: str | None = None


class VerificationInstruction(ArtifactModel):
    type: str = "unit"
    """unit / integration / manual"""
    description: str = ""
    steps: list[str] = Field(default_factory=list)


class Risk(ArtifactModel):
    description: str = ""
    severity: Severity = "medium"
    mitigation: str = ""
    affected_files: list[str] | None = None

    @field_validator("severity", mode="before")
    @classmethod
    def _normalize_severity(cls, value: Any) -> Any:
        if isinstance(value, str) and value.lower() in ("low", "medium", "high"):
            return value.lower()
        return "medium"


class BreakingChanges(ArtifactModel):
    has_breaking_changes: bool = False
    description: str | None = None
    migration_steps: list[str] | None = None


class ArtifactMetadata(ArtifactModel):
    estimated_effort: str = "Unknown"
    affected_components: list[str] = Field(default_factory=list)
    requires_tests: bool = True
    requires_documentation: bool = False


class Artifact(ArtifactModel):
    """最终分析产物"""

    task_type: str = "feature"
    summary: str = "Analysis completed"
    context: str = ""
    expected_behavior: str = ""
    acceptance_criteria: list[str] = Field(default_factory=list)
    files_to_create: list[FileToCreate] = Field(default_factory=list)
    files_to_modify: list[FileToModify] = Field(default_factory=list)
    functions_to_create: list[FunctionToCreate] = Field(default_factory=list)
    implementation_steps: list[ImplementationStep] = Field(default_factory=list)
    edge_cases: list[EdgeCase] = Field(default_factory=list)
    testing_instructions: list[VerificationInstruction] = Field(default_factory=list)
    risks: list[Risk] = Field(default_factory=list)
    dependencies: list[str] = Field(default_factory=list)
    breaking_changes: BreakingChanges = Field(default_factory=BreakingChanges)
    metadata: ArtifactMetadata = Field(default_factory=ArtifactMetadata)

    # 可选段落（仅在模型给出时出现）
    test_cases: list[dict[str, Any]] | None = None
    code_quality_checks: list[dict[str, Any]] | None = None
    bug_analysis: dict[str, Any] | None = None
    fix: dict[str, Any] | None = None
    regression_risks: list[dict[str, Any]] | None = None
    current_state: str | None = None
    target_state: str | None = None
    impact_analysis: dict[str, Any] | None = None
    backwards_compatibility: dict[str, Any] | None = None
    before_after_examples: list[dict[str, Any]] | None = None
    testing_recommendations: list[str] | None = None

    @field_validator("task_type", "summary", mode="before")
    @classmethod
    def _empty_to_default(cls, value: Any, info: ValidationInfo) -> Any:
        if value == "":
            return cls.model_fields[info.field_name].default
        return value

    @classmethod
    def degraded(cls, raw_text: str) -> Artifact:
        """无法解析时的降级产物：保留原文前 500 字符并标注解析失败"""
        return cls(summary=raw_text[:500], risks=[Risk(**PARSE_FAILURE_RISK)])

    def to_wire(self) -> dict[str, Any]:
        """转换为线路格式（camelCase，省略空的可选字段）"""
        return self.model_dump(by_alias=True, exclude_none=True, mode="json")
