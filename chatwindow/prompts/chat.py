"""Literal prompt fragments for chat prompt assembly.

Token accounting is done on these exact strings, so any change here changes
the budget arithmetic as well.
"""

DOCUMENT_PREAMBLE = "You are a helpful assistant. You have access to the following document:\n\n"
DOCUMENT_BEGIN = "--- BEGIN DOCUMENT ---\n"
DOCUMENT_END = "\n--- END DOCUMENT ---\n\n"

SUMMARY_LINE = "Conversation summary: {summary}\n\n"
HISTORY_HEADER = "Previous conversation:\n"
HISTORY_LINE = "{label}: {content}\n"
HISTORY_FOOTER = "\n"
USER_LINE = "User: {message}\n"
ASSISTANT_CUE = "Assistant:"


def render_document(body: str) -> str:
    """Wrap document text in the BEGIN/END markers."""
    return DOCUMENT_PREAMBLE + DOCUMENT_BEGIN + body + DOCUMENT_END
