from __future__ import annotations
from typing import Annotated, Any, List, Literal, Optional
from pydantic import AliasChoices, BaseModel, BeforeValidator, ConfigDict, Field
from pydantic.alias_generators import to_camel


def _as_text(value: Any) -> Any:
    # The model sometimes sends numbers or lists where we expect plain text
    if value is None:
        return ""
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        return str(value)
    if isinstance(value, (list, tuple)):
        return ", ".join(str(v) for v in value if v not in (None, ""))
    return value


def _as_list(value: Any) -> Any:
    if value is None or value == "":
        return []
    if isinstance(value, str):
        return [part.strip() for part in value.split(",") if part.strip()]
    if isinstance(value, (list, tuple, set)):
        return [str(v).strip() for v in value if v is not None and str(v).strip()]
    return value


def _as_pairings(value: Any) -> Any:
    if value is None or value == "":
        return {}
    if isinstance(value, (list, tuple, str)):
        return {"alcoholic": value}
    return value


Text = Annotated[str, BeforeValidator(_as_text)]
TextList = Annotated[List[str], BeforeValidator(_as_list)]


class CamelModel(BaseModel):
    # camelCase on the wire (matches the catalog file and the frontend), snake_case in Python
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class Pairings(CamelModel):
    alcoholic: TextList = Field(default_factory=list)
    non_alcoholic: TextList = Field(default_factory=list)


PairingsField = Annotated[Pairings, BeforeValidator(_as_pairings)]


class CatalogEntry(CamelModel):
    # One authoritative inventory record, owned by the admin panel
    id: Text
    brand: str
    name: str
    origin: str = ""
    wrapper: str = ""
    body: str = ""
    strength: str = ""
    price_range: Text = ""
    smoking_time: Text = ""
    description: str = ""
    tasting_notes: TextList = Field(default_factory=list)
    pairings: PairingsField = Field(default_factory=Pairings)
    inventory_count: int = Field(
        default=0,
        ge=0,
        validation_alias=AliasChoices("inventoryCount", "inventory", "inventory_count"),
        serialization_alias="inventoryCount",
    )
    image_url: Optional[str] = None
    product_url: Optional[str] = None
    barcode: Optional[str] = None
    best_for: TextList = Field(default_factory=list)


class CandidateCigar(CamelModel):
    # What the model proposes; nothing here is trusted until it matches the catalog
    name: Text = ""
    brand: Text = ""
    origin: Text = ""
    wrapper: Text = ""
    body: Text = ""
    strength: Text = ""
    price: Text = ""
    time: Text = ""
    description: Text = ""
    tasting_notes: TextList = Field(default_factory=list)
    pairings: PairingsField = Field(default_factory=Pairings)


class DisplayCigar(CandidateCigar):
    # A candidate after enrichment. Media urls are only set when it resolved to inventory
    id: Optional[str] = None
    image_url: Optional[str] = None
    product_url: Optional[str] = None
    in_stock: bool = False


class ParsedResponse(BaseModel):
    message: str = ""
    cigars: List[CandidateCigar] = Field(default_factory=list)
    confidence: Optional[int] = None
    # True when the cigar list was rebuilt from a truncated payload
    recovered: bool = False


class ChatMessage(BaseModel):
    role: Literal["user", "assistant", "system"] = "user"
    content: str = ""


class ChatRequest(CamelModel):
    # What comes from the frontend when the customer sends a message
    messages: List[ChatMessage] = Field(default_factory=list)
    image: Optional[str] = None
    shown_cigars: List[str] = Field(default_factory=list)


class ChatResponse(CamelModel):
    message: str
    cigars: List[DisplayCigar] = Field(default_factory=list)
    confidence: Optional[int] = None


class QuizRequest(CamelModel):
    preferences: str = ""


class ScanRequest(CamelModel):
    barcode: Optional[str] = None
    image: Optional[str] = None


class ScanResponse(CamelModel):
    cigar: Optional[DisplayCigar] = None
    error: Optional[str] = None
    confidence: Optional[int] = None
    needs_clarification: Optional[bool] = None


class FeedbackRequest(CamelModel):
    session_id: str = Field(min_length=1)
    rating: Literal["up", "down"]
    comment: Optional[str] = None
    user_message: str = ""
    assistant_message: str = Field(min_length=1)
    cigars_shown: List[str] = Field(default_factory=list)


class FeedbackEntry(FeedbackRequest):
    id: str
    timestamp: str
    user_agent: str = "unknown"
