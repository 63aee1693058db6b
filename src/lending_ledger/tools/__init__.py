"""
MCP Tools for the Lending Ledger.

Each tool is a dictionary with name, description, input schema and an
async handler; the server registers every entry of ``all_tools``.
"""

from .lending import borrow_title, loan_history, return_title

all_tools = [
    borrow_title,
    return_title,
    loan_history,
]

__all__ = [
    "all_tools",
    "borrow_title",
    "loan_history",
    "return_title",
]
