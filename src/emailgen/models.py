from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator


def utc_now() -> str:
    return datetime.now(timezone.utc).isoformat()


class ModificationState(str, Enum):
    PROPOSED = "proposed"
    APPLIED = "applied"
    REVERTED = "reverted"
    REJECTED = "rejected"


class Modification(BaseModel):
    """
    A single line-ranged edit suggested by the code assistant.

    The wire format is camelCase (originalCode, startLine, ...). Both the
    camelCase and the snake_case spellings are accepted on input.
    """
    model_config = ConfigDict(populate_by_name=True)

    description: str = ""

    original_code: str = Field(
        ...,
        alias="originalCode",
        description="The exact block of the document this edit replaces.",
    )

    new_code: str = Field(
        ...,
        alias="newCode",
        description="The block that should be in the document after the edit.",
    )

    start_line: int = Field(..., alias="startLine", ge=1)
    end_line: int = Field(..., alias="endLine", ge=1)

    start_col: Optional[int] = Field(None, alias="startCol", ge=0)
    end_col: Optional[int] = Field(None, alias="endCol", ge=0)

    context_validation: Optional[str] = Field(None, alias="contextValidation")

    applied: bool = False

    @field_validator("original_code", "new_code")
    @classmethod
    def _not_blank(cls, value: str) -> str:
        if not value or not value.strip():
            raise ValueError("code block must not be empty")
        return value

    @model_validator(mode="after")
    def _check_range(self) -> "Modification":
        if self.start_line > self.end_line:
            raise ValueError(
                f"startLine ({self.start_line}) must not exceed endLine ({self.end_line})"
            )
        return self

    @property
    def original_lines(self) -> List[str]:
        return self.original_code.split("\n")

    @property
    def new_lines(self) -> List[str]:
        return self.new_code.split("\n")

    @property
    def is_column_scoped(self) -> bool:
        return (
            self.start_col is not None
            and self.end_col is not None
            and self.start_line == self.end_line
        )

    def to_wire(self) -> Dict[str, Any]:
        return self.model_dump(by_alias=True, exclude_none=True)


class AssistantReply(BaseModel):
    """Parsed answer of an analyze-and-modify request."""
    response: str = ""
    modifications: List[Modification] = Field(default_factory=list)


class SuggestionType(str, Enum):
    IMPROVEMENT = "improvement"
    ERROR = "error"
    WARNING = "warning"
    INFO = "info"


class CodeSuggestion(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    id: str
    title: str
    description: str = ""
    code: Optional[str] = None
    line_number: Optional[int] = Field(None, alias="lineNumber")
    type: SuggestionType = SuggestionType.INFO


class MessageRole(str, Enum):
    USER = "user"
    ASSISTANT = "assistant"
    SYSTEM = "system"
    ERROR = "error"


class ChatMessage(BaseModel):
    id: Optional[str] = None
    role: MessageRole
    content: str
    timestamp: Optional[str] = None


class RuleType(str, Enum):
    REGEX = "regex"
    ATTRIBUTE = "attribute"
    TAG = "tag"


class Severity(str, Enum):
    ERROR = "error"
    WARNING = "warning"
    INFO = "info"


class QARule(BaseModel):
    id: str
    name: str
    description: str = ""
    # Kept as a plain string so unknown types from the store can be reported
    # as failing rules instead of being rejected on load.
    rule_type: str
    rule_pattern: str
    severity: Severity = Severity.WARNING
    is_active: bool = True


class QAResult(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    rule_id: str = Field(..., alias="ruleId")
    rule_name: str = Field(..., alias="ruleName")
    description: str = ""
    severity: Severity
    is_passing: bool = Field(..., alias="isPassing")
    message: str


class LintReport(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    is_valid: bool = Field(..., alias="isValid")
    errors: List[str] = Field(default_factory=list)
    warnings: List[str] = Field(default_factory=list)


class QAReport(BaseModel):
    passed: bool
    results: List[QAResult]
    lint: Optional[LintReport] = None


class EmailVersion(BaseModel):
    id: str
    email_id: str
    user_id: Optional[str] = None
    version_number: int
    html_content: str
    metadata: Dict[str, Any] = Field(default_factory=dict)
    created_at: Optional[str] = None


class TargetPlatform(str, Enum):
    SFMC = "sfmc"
    GENERIC = "generic"


class ConversionOptions(BaseModel):
    make_responsive: bool = True
    optimize_for_email: bool = True
    target_platform: TargetPlatform = TargetPlatform.SFMC


class ConversionMetadata(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    original_file_name: str = Field(..., alias="originalFileName")
    conversion_timestamp: str = Field(default_factory=utc_now, alias="conversionTimestamp")
    design_type: str = Field(..., alias="designType")
    responsive: bool = True
    user_id: Optional[str] = Field(None, alias="userId")
    conversion_id: Optional[str] = Field(None, alias="conversionId")


class ConversionResult(BaseModel):
    html: str
    metadata: ConversionMetadata


class RenderProvider(str, Enum):
    LITMUS = "litmus"
    EMAIL_ON_ACID = "emailonacid"
