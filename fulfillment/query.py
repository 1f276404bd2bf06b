"""
List-screen query state and its reducer.

A list screen keeps four pieces of state: search text, an active filter,
the page, and a view mode.  Each transition below returns a new
ListQueryState; resolve() turns a state into exactly one ListRequest using
the precedence

    search (non-blank)  >  filter (set)  >  view mode (not "all")  >  all

Transitions that change the criterion always reset the page to 0, so a
request never asks for page 7 of a result set it has not seen.
"""
from datetime import date
from typing import Optional

from models.query import ActiveFilter, ListQueryState, ListRequest

VIEW_MODES = ("all", "overdue", "urgent")


def submit_search(state: ListQueryState, text: Optional[str]) -> ListQueryState:
    if text and text.strip():
        return state.model_copy(update={
            "search_text": text.strip(),
            "active_filter": None,
            "view_mode": "all",
            "page": 0,
        })
    return clear_search(state)


def clear_search(state: ListQueryState) -> ListQueryState:
    return state.model_copy(update={"search_text": "", "page": 0})


def apply_filter(state: ListQueryState, filter_type: str, value: Optional[str]) -> ListQueryState:
    """Raises ValueError when no value is given."""
    if not value or not str(value).strip():
        raise ValueError("Please select a filter value")
    return state.model_copy(update={
        "active_filter": ActiveFilter(type=filter_type, value=str(value).strip()),
        "search_text": "",
        "view_mode": "all",
        "page": 0,
    })


def clear_filter(state: ListQueryState) -> ListQueryState:
    return state.model_copy(update={"active_filter": None, "page": 0})


def toggle_view_mode(state: ListQueryState, mode: str) -> ListQueryState:
    if mode not in VIEW_MODES:
        raise ValueError(f"Unknown view mode {mode!r}. Must be one of {VIEW_MODES}")
    return state.model_copy(update={
        "view_mode": mode,
        "search_text": "",
        "active_filter": None,
        "page": 0,
    })


def change_page(state: ListQueryState, page: int) -> ListQueryState:
    if page < 0:
        raise ValueError("Page must be zero or greater")
    return state.model_copy(update={"page": page})


def resolve(state: ListQueryState) -> ListRequest:
    page = state.page if state.page > 0 else None

    if state.search_text and state.search_text.strip():
        return ListRequest(mode="search", text=state.search_text.strip(), page=page)
    if state.active_filter is not None:
        return ListRequest(
            mode="filter",
            filter_type=state.active_filter.type,
            filter_value=state.active_filter.value,
            page=page,
        )
    if state.view_mode in ("overdue", "urgent"):
        return ListRequest(mode=state.view_mode, page=page)
    return ListRequest(mode="all", page=page)


def state_from_params(
    text: Optional[str] = None,
    status: Optional[str] = None,
    category: Optional[str] = None,
    view: Optional[str] = None,
    page: int = 0,
) -> ListQueryState:
    """
    Rebuild a query state from request parameters (REST / CLI).

    When several criteria arrive at once the same precedence applies, so the
    server answers exactly what resolve() would have asked for.
    """
    state = ListQueryState()
    if view:
        state = toggle_view_mode(state, view)
    if category:
        state = apply_filter(state, "category", category)
    if status:
        state = apply_filter(state, "status", status)
    if text:
        state = submit_search(state, text)
    return change_page(state, page)


# ----------------------------------------------------------------------
# Classification
# ----------------------------------------------------------------------

def _as_date(value) -> Optional[date]:
    if value is None or value == "":
        return None
    if isinstance(value, date):
        return value
    return date.fromisoformat(str(value)[:10])


def is_overdue(due, today: date) -> bool:
    """Expected arrival strictly before today."""
    due = _as_date(due)
    return due is not None and due < today


def is_urgent(due, today: date, days: int = 2) -> bool:
    """Estimated delivery within *days* of today (past dates included)."""
    due = _as_date(due)
    return due is not None and (due - today).days <= days
