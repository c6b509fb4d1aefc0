"""结构化业务记录。

罪名、要件、表单数据以及报告分析结果都以 pydantic 模型表示，
在存储边界与模型输出解析处统一校验，避免任意结构的字典在系统内流转。
"""

import re
from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator


class PenalCode(BaseModel):
    """一条刑法条文（CODE #, CODE TYPE, NARRATIVE, M/F）。"""

    id: str
    code_number: str
    code_type: str
    narrative: str
    m_f: Literal["M", "F"]


class CrimeElement(BaseModel):
    """某条罪名的构成要件与 CALCRIM 示例。"""

    id: str
    pc_id: str
    elements: List[str] = Field(default_factory=list)
    calcrim_example: List[str] = Field(default_factory=list)


class CauseForm(BaseModel):
    """Probable cause 表单数据。表单字段由外部 UI 决定，这里只保证是映射。"""

    id: str
    data: Dict[str, Any] = Field(default_factory=dict)


class BookingForm(BaseModel):
    id: str
    data: Dict[str, Any] = Field(default_factory=dict)
    charges: List[Any] = Field(default_factory=list)
    cause_id: Optional[str] = None


class _Section(BaseModel):
    model_config = ConfigDict(extra="ignore")


class DocumentationAnalysis(_Section):
    strengths: List[str] = Field(default_factory=list)
    weaknesses: List[str] = Field(default_factory=list)
    recommendations: List[str] = Field(default_factory=list)


class LegalElements(_Section):
    satisfiedElements: List[str] = Field(default_factory=list)
    missingElements: List[str] = Field(default_factory=list)
    recommendations: List[str] = Field(default_factory=list)


class InvestigativeQuality(_Section):
    completedSteps: List[str] = Field(default_factory=list)
    missingSteps: List[str] = Field(default_factory=list)
    recommendations: List[str] = Field(default_factory=list)


class CourtPreparation(_Section):
    strengths: List[str] = Field(default_factory=list)
    vulnerabilities: List[str] = Field(default_factory=list)
    recommendations: List[str] = Field(default_factory=list)


class OverallAssessment(_Section):
    reportScore: float
    primaryIssues: List[str] = Field(default_factory=list)
    nextSteps: List[str] = Field(default_factory=list)

    @field_validator("reportScore", mode="before")
    @classmethod
    def coerce_score(cls, v: Any) -> float:
        # 模型有时返回 "7"、"7/10" 这类字符串
        if isinstance(v, str):
            m = re.search(r"\d+(\.\d+)?", v)
            if not m:
                raise ValueError(f"reportScore is not numeric: {v!r}")
            v = float(m.group(0))
        score = float(v)
        if not 1.0 <= score <= 10.0:
            raise ValueError(f"reportScore out of range: {score}")
        return score


class ReportAnalysis(_Section):
    """validate_report 的结构化结果，字段名与模型输出的 JSON 保持一致。"""

    documentationAnalysis: DocumentationAnalysis
    legalElements: LegalElements
    investigativeQuality: InvestigativeQuality
    courtPreparation: CourtPreparation
    overallAssessment: OverallAssessment
