from pydantic import BaseModel, Field
from typing import Any, Dict, List, Literal, Optional, Tuple

Dir = Literal["asc", "desc"]

class PageMeta(BaseModel):
    current_page: Optional[int] = None
    last_page: Optional[int] = None
    per_page: Optional[int] = None
    total: Optional[int] = None

class QueryParams(BaseModel):
    filters: Dict[str, Any] = Field(default_factory=dict)
    order_by: Any = None
    page: Any = 1
    per_page: Any = None
    method: str = "GET"
    # decoded request input; a resource re-reads it with its own parameter names
    raw: Optional[Dict[str, Any]] = None

class ResourcePayload(BaseModel):
    data: List[Any] = Field(default_factory=list)
    meta: Optional[PageMeta] = None
    applied_filters: List[str] = Field(default_factory=list)
    order_by: List[Tuple[str, Dir]] = Field(default_factory=list)
