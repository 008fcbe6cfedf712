"""
Assistant data models

Defines Pydantic models for assistants, their display/wire histories
and the external API configurations attached to them
"""
from datetime import datetime
from typing import Dict, List, Literal, Optional

from pydantic import BaseModel, Field


AUTO_ASSIST_ID = 999999
AUTO_ASSIST_TITLE = "AutoAssistSystem"


class InlineData(BaseModel):
    """Binary attachment inlined into a wire turn"""
    mime_type: str = Field(..., description="MIME type of the payload")
    data: str = Field(..., description="Base64 encoded payload")


class WirePart(BaseModel):
    """One part of a wire turn: either text or inline data"""
    text: Optional[str] = None
    inline_data: Optional[InlineData] = None


class WireTurn(BaseModel):
    """Role-tagged, multi-part turn sent to the completion service"""
    role: str = Field(..., description="'user' or 'model'")
    parts: List[WirePart] = Field(default_factory=list)

    @classmethod
    def from_text(cls, role: str, text: str) -> "WireTurn":
        return cls(role=role, parts=[WirePart(text=text)])

    @property
    def text(self) -> str:
        """Text of the leading part (empty when the turn starts with binary data)"""
        if self.parts and self.parts[0].text is not None:
            return self.parts[0].text
        return ""

    def binary_parts(self) -> List[WirePart]:
        """Inline-data parts after the leading text part"""
        return [part for part in self.parts[1:] if part.inline_data is not None]


class DisplayMessage(BaseModel):
    """Message as shown to the user"""
    role: Literal["user", "assistant"]
    content: str
    image_path: Optional[str] = Field(None, description="Path of a generated image, if any")


class APITrigger(BaseModel):
    """Rule deciding whether an API configuration applies to a message"""
    type: Literal["keyword", "pattern"]
    value: str = Field(..., description="Comma-separated keywords or a regular expression")
    description: str = Field("", description="What the API provides when this trigger fires")


class ParameterSpec(BaseModel):
    """Parameter the model should extract from the user message"""
    param_name: str
    description: str = ""


class APIAuthConfig(BaseModel):
    """Credentials used by the external API invoker"""
    username: Optional[str] = None
    password: Optional[str] = None
    token: Optional[str] = None
    key_name: Optional[str] = None
    key_value: Optional[str] = None
    in_header: bool = True


class APIConfig(BaseModel):
    """External API configuration attached to an assistant"""
    id: str
    name: str
    description: Optional[str] = None
    endpoint: str
    method: Literal["GET", "POST", "PUT", "DELETE"] = "GET"
    headers: Dict[str, str] = Field(default_factory=dict)
    body_template: Optional[str] = None
    query_params_template: Optional[str] = None
    response_template: Optional[str] = None
    auth_type: Literal["none", "basic", "bearer", "apiKey"] = "none"
    auth_config: Optional[APIAuthConfig] = None
    triggers: List[APITrigger] = Field(default_factory=list)
    parameter_extraction: List[ParameterSpec] = Field(default_factory=list)
    response_type: Literal["text", "image"] = "text"
    image_data_path: Optional[str] = Field(None, description="Dot path to base64 image data in a JSON response")


class Assistant(BaseModel):
    """Assistant record (persona, histories, knowledge files and API settings)"""
    id: int = Field(..., description="Assistant identifier; 999999 is reserved for AutoAssist")
    title: str = Field(..., description="Display title, also used for AutoAssist delegation")
    system_prompt: str = ""
    messages: List[DisplayMessage] = Field(default_factory=list)
    post_messages: List[WireTurn] = Field(default_factory=list)
    created_at: str = Field(default_factory=lambda: datetime.now().strftime("%Y-%m-%d %H:%M:%S"))
    input_message: str = ""
    knowledge_file_paths: List[str] = Field(default_factory=list)
    summary: Optional[str] = Field(None, description="Short capability summary used by AutoAssist")
    api_configs: List[APIConfig] = Field(default_factory=list)
    enable_api_call: bool = True

    @property
    def is_auto_assist(self) -> bool:
        return self.id == AUTO_ASSIST_ID


class SubtaskInfo(BaseModel):
    """One decomposed unit of work with its optional delegate"""
    task: str
    recommended_assistant: Optional[str] = None


class AttachedFile(BaseModel):
    """File attached to a single user turn"""
    name: str
    data: str = Field(..., description="Base64 encoded content")
    mime_type: str


class AssistantCreate(BaseModel):
    """Create assistant request"""
    title: str
    system_prompt: str = ""
    knowledge_file_paths: List[str] = Field(default_factory=list)
    summary: Optional[str] = None
    api_configs: List[APIConfig] = Field(default_factory=list)
    enable_api_call: bool = False


class AssistantUpdate(BaseModel):
    """Update assistant request (partial)"""
    title: Optional[str] = None
    system_prompt: Optional[str] = None
    knowledge_file_paths: Optional[List[str]] = None
    summary: Optional[str] = None
    api_configs: Optional[List[APIConfig]] = None
    enable_api_call: Optional[bool] = None


def new_auto_assist() -> Assistant:
    """Build an empty AutoAssist record"""
    return Assistant(id=AUTO_ASSIST_ID, title=AUTO_ASSIST_TITLE, system_prompt="")
