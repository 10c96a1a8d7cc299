import time
from enum import Enum
from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel, Field


class RouteTier(str, Enum):
    """Вердикт классификатора: какой класс провайдеров нужен запросу."""
    LOCAL = "local"
    CLOUD = "cloud"


class OutcomeTier(str, Enum):
    """Каким путём получен ответ route()."""
    PRIMARY = "primary"
    FALLBACK = "fallback"
    EMERGENCY = "emergency"
    CACHE = "cache"


class FunctionCall(BaseModel):
    name: str
    arguments: str = "{}"


class ToolCall(BaseModel):
    id: str
    type: str = "function"
    function: FunctionCall


class ChatMessage(BaseModel):
    """Один ход диалога (ConversationTurn). Неизменяем после создания."""

    role: Literal["system", "user", "assistant", "tool"]
    content: Optional[str] = None
    name: Optional[str] = None
    tool_calls: Optional[List[ToolCall]] = None
    tool_call_id: Optional[str] = None
    timestamp: float = Field(default_factory=time.time)

    model_config = {"frozen": True}

    def to_provider_dict(self) -> Dict[str, Any]:
        """Формат OpenAI chat-completions без служебных полей."""
        return self.model_dump(exclude_none=True, exclude={"timestamp"})


class UsageInfo(BaseModel):
    prompt_tokens: int = 0
    completion_tokens: int = 0
    total_tokens: int = 0

    def __add__(self, other: "UsageInfo") -> "UsageInfo":
        return UsageInfo(
            prompt_tokens=self.prompt_tokens + other.prompt_tokens,
            completion_tokens=self.completion_tokens + other.completion_tokens,
            total_tokens=self.total_tokens + other.total_tokens,
        )


class ProviderResponse(BaseModel):
    """Нормализованный ответ одного вызова провайдера."""

    content: Optional[str] = None
    tool_calls: List[ToolCall] = Field(default_factory=list)
    usage: Optional[UsageInfo] = None
    model: Optional[str] = None

    @property
    def has_tool_calls(self) -> bool:
        return bool(self.tool_calls)


class ToolInvocation(BaseModel):
    """Один вызов инструмента, запрошенный провайдером, вместе с результатом."""

    call_id: str
    name: str
    arguments: Dict[str, Any] = Field(default_factory=dict)
    result: Any = None
    error: Optional[str] = None


class ExecutionResult(BaseModel):
    """Результат ProviderRegistry.execute()."""

    content: str
    provider_id: str
    tier: OutcomeTier
    usage: Optional[UsageInfo] = None
    rounds: int = 1
    tool_invocations: List[ToolInvocation] = Field(default_factory=list)


class RouteOptions(BaseModel):
    force_tier: Optional[RouteTier] = None
    is_admin: bool = False
    custom_system_prompt: Optional[str] = None
    intent: Optional[str] = None


class RouteOutcome(BaseModel):
    """Результат одного вызова route(). Создаётся заново на каждый вызов."""

    content: str
    tier: OutcomeTier
    provider: Optional[str] = None
    usage: Optional[UsageInfo] = None
    route_tier: Optional[RouteTier] = None
    cached: bool = False
    tool_calls: int = 0


class RouteRequest(BaseModel):
    message: str
    history: List[ChatMessage] = Field(default_factory=list)
    force_tier: Optional[RouteTier] = None
    is_admin: bool = False
    custom_system_prompt: Optional[str] = None
    intent: Optional[str] = None

    class Config:
        json_schema_extra = {
            "example": {
                "message": "How many cars are available this weekend?",
                "history": [{"role": "user", "content": "Hi"}, {"role": "assistant", "content": "Hello!"}],
                "is_admin": False,
                "intent": "booking_inquiry",
            }
        }

    def to_options(self) -> RouteOptions:
        return RouteOptions(
            force_tier=self.force_tier,
            is_admin=self.is_admin,
            custom_system_prompt=self.custom_system_prompt,
            intent=self.intent,
        )


class HealthResponse(BaseModel):
    status: str
    service: str
    version: str


class RecheckResponse(BaseModel):
    results: Dict[str, bool] = Field(default_factory=dict, description="{provider_id: recovered}")
    providers: List[Dict[str, Any]] = Field(default_factory=list)
