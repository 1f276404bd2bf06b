from typing import Optional, Literal

from pydantic import BaseModel, Field


FilterType = Literal["status", "category"]
QueryMode = Literal["search", "filter", "overdue", "urgent", "all"]


class ActiveFilter(BaseModel):
    type: FilterType
    value: str


class ListQueryState(BaseModel):
    """
    Client-side query state of one list screen.  Only one criterion is ever
    sent to the server; see fulfillment.query.resolve for the precedence.
    """
    search_text: str = ""
    active_filter: Optional[ActiveFilter] = None
    page: int = Field(default=0, ge=0)
    view_mode: str = "all"                  # all | overdue (purchase) | urgent (sales)


class ListRequest(BaseModel):
    """Exactly one server call, derived from a ListQueryState."""
    mode: QueryMode
    text: Optional[str] = None
    filter_type: Optional[FilterType] = None
    filter_value: Optional[str] = None
    page: Optional[int] = None              # Only sent when > 0

    def params(self) -> dict:
        out: dict = {}
        if self.mode == "search":
            out["text"] = self.text
        elif self.mode == "filter":
            out[self.filter_type] = self.filter_value
        if self.page:
            out["page"] = self.page
        return out


class Page(BaseModel):
    """Paginated list response."""
    content: list = Field(default_factory=list)
    page: int = 0
    size: int = 10
    total_elements: int = 0
    total_pages: int = 0
