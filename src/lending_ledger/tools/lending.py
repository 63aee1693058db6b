"""
Lending tools for the Lending Ledger MCP server.

1. borrow_title: lend one copy of a title to a borrower
2. return_title: take back a borrower's copy of a title
3. loan_history: list a borrower's loans, newest first

The tools only translate between MCP arguments and the lending coordinator.
Every coordinator outcome maps to one response: a success carries the loan
record, a failure carries its kind, reason and whether reconciliation is
needed.
"""

import logging
from typing import Any

from pydantic import BaseModel, Field, ValidationError, model_validator

from ..database.exceptions import RepositoryException
from ..database.repository import PaginationParams
from ..lending.services import get_services
from ..models.loan import LoanRecord
from ..models.results import LendingFailure, LendingSuccess

logger = logging.getLogger(__name__)


# =============================================================================
# INPUT SCHEMAS
# =============================================================================

class LendingInput(BaseModel):
    """
    Input shared by borrow_title and return_title.

    The title is named by ``title_id`` or by ``isbn``; exactly one is required.
    """

    borrower_id: int = Field(
        ...,
        description="Identifier of the borrower",
        ge=0,
        examples=[7, 42],
    )

    title_id: int | None = Field(
        default=None,
        description="Internal identifier of the title",
        ge=1,
        examples=[1, 12],
    )

    isbn: str | None = Field(
        default=None,
        description="ISBN of the title (hyphens allowed)",
        examples=["978-0-134-68547-9", "0306406152"],
    )

    @model_validator(mode="after")
    def validate_title_reference(self) -> "LendingInput":
        if (self.title_id is None) == (self.isbn is None):
            raise ValueError("Provide exactly one of title_id or isbn")
        return self


class LoanHistoryInput(BaseModel):
    """Input schema for the loan_history tool."""

    borrower_id: int = Field(
        ...,
        description="Identifier of the borrower",
        ge=0,
        examples=[7],
    )

    open_only: bool = Field(
        default=False,
        description="Only list loans that have not been returned",
    )

    page: int = Field(default=1, ge=1, description="Page number")

    page_size: int = Field(default=20, ge=1, le=100, description="Loans per page")


# =============================================================================
# RESPONSE HELPERS
# =============================================================================

def _error(text: str, data: dict[str, Any] | None = None) -> dict[str, Any]:
    response: dict[str, Any] = {"isError": True, "content": [{"type": "text", "text": text}]}
    if data is not None:
        response["data"] = data
    return response


def _loan_data(loan: LoanRecord) -> dict[str, Any]:
    return {
        "id": loan.id,
        "title_id": loan.title_id,
        "borrower_id": loan.borrower_id,
        "borrowed_at": loan.borrowed_at.isoformat(),
        "due_at": loan.due_at.isoformat(),
        "returned_at": loan.returned_at.isoformat() if loan.returned_at else None,
        "loan_period_days": loan.loan_period_days,
    }


def _failure_response(failure: LendingFailure) -> dict[str, Any]:
    text = failure.message
    if failure.state_changed:
        text += " Records disagree and need reconciliation."
    return _error(text, {"failure": failure.model_dump(mode="json")})


def _resolve_title_id(params: LendingInput) -> int | None:
    if params.title_id is not None:
        return params.title_id
    title = get_services().inventory.get_by_isbn(params.isbn)
    return title.id if title else None


def _parse(model: type[BaseModel], arguments: dict[str, Any], action: str):
    try:
        return model.model_validate(arguments), None
    except ValidationError as e:
        logger.warning("Invalid %s parameters: %s", action, e)
        return None, _error(f"Invalid {action} parameters: {e}")


# =============================================================================
# HANDLERS
# =============================================================================

async def borrow_title_handler(arguments: dict[str, Any]) -> dict[str, Any]:
    """
    Handler for the borrow_title tool.

    Args:
        arguments: Raw arguments from MCP tools/call request

    Returns:
        Structured response with the new loan or the failure details
    """
    params, error = _parse(LendingInput, arguments, "borrow")
    if error:
        return error

    try:
        title_id = _resolve_title_id(params)
        if title_id is None:
            return _error(f"Title with ISBN {params.isbn} not found")

        result = get_services().coordinator.borrow_title(params.borrower_id, title_id)
    except RepositoryException as e:
        logger.exception("Borrow lookup failed")
        return _error(f"Borrow failed: {e!s}")

    if isinstance(result, LendingFailure):
        return _failure_response(result)

    loan = result.loan
    return {
        "content": [{
            "type": "text",
            "text": (
                f"Borrower {loan.borrower_id} borrowed title {loan.title_id}. "
                f"Due date: {loan.due_at.strftime('%B %d, %Y')}"
            ),
        }],
        "data": {"loan": _loan_data(loan)},
    }


async def return_title_handler(arguments: dict[str, Any]) -> dict[str, Any]:
    """
    Handler for the return_title tool.

    Returns:
        Structured response with the closed loan or the failure details
    """
    params, error = _parse(LendingInput, arguments, "return")
    if error:
        return error

    try:
        title_id = _resolve_title_id(params)
        if title_id is None:
            return _error(f"Title with ISBN {params.isbn} not found")

        result = get_services().coordinator.return_title(params.borrower_id, title_id)
    except RepositoryException as e:
        logger.exception("Return lookup failed")
        return _error(f"Return failed: {e!s}")

    if not isinstance(result, LendingSuccess):
        return _failure_response(result)

    loan = result.loan
    message = f"Borrower {loan.borrower_id} returned title {loan.title_id}."
    days_late = loan.days_overdue()
    if days_late:
        message += f" Returned {days_late} day{'s' if days_late != 1 else ''} late."

    return {
        "content": [{"type": "text", "text": message}],
        "data": {"loan": _loan_data(loan), "days_overdue": days_late},
    }


async def loan_history_handler(arguments: dict[str, Any]) -> dict[str, Any]:
    """
    Handler for the loan_history tool.

    Open loans are listed soonest due first; full history newest first.
    """
    params, error = _parse(LoanHistoryInput, arguments, "loan history")
    if error:
        return error

    ledger = get_services().ledger
    try:
        if params.open_only:
            loans = ledger.open_for_borrower(params.borrower_id)
            total = len(loans)
            start = (params.page - 1) * params.page_size
            loans = loans[start : start + params.page_size]
        else:
            page = ledger.history_for_borrower(
                params.borrower_id,
                PaginationParams(page=params.page, page_size=params.page_size),
            )
            loans, total = page.items, page.total
    except RepositoryException as e:
        logger.exception("Loan history lookup failed")
        return _error(f"Loan history failed: {e!s}")

    label = "open loans" if params.open_only else "loans"
    return {
        "content": [{
            "type": "text",
            "text": f"Borrower {params.borrower_id} has {total} {label}.",
        }],
        "data": {
            "loans": [_loan_data(loan) for loan in loans],
            "total": total,
            "page": params.page,
            "page_size": params.page_size,
        },
    }


# =============================================================================
# TOOL DEFINITIONS
# =============================================================================

borrow_title = {
    "name": "borrow_title",
    "description": (
        "Lend one copy of a title to a borrower. Takes a copy from the inventory and "
        "opens a loan due after the standard loan period. Fails without changing "
        "anything if no copy is available or the borrower already has the title."
    ),
    "inputSchema": LendingInput.model_json_schema(),
    "handler": borrow_title_handler,
}

return_title = {
    "name": "return_title",
    "description": (
        "Return a borrower's copy of a title. Closes the open loan and puts the copy "
        "back into the inventory. Reports when the loan was returned late."
    ),
    "inputSchema": LendingInput.model_json_schema(),
    "handler": return_title_handler,
}

loan_history = {
    "name": "loan_history",
    "description": "List a borrower's loans, optionally only those not yet returned.",
    "inputSchema": LoanHistoryInput.model_json_schema(),
    "handler": loan_history_handler,
}
