"""Merge the active document and attached documents into one context string."""

from collections.abc import Callable, Iterable

DocumentReader = Callable[[str], str | None]


def merge_documents(
    read: DocumentReader,
    active_path: str | None,
    attached_paths: Iterable[str] | None = None,
) -> str:
    """
    Build the external context from the active file plus attachments.

    Each path appears once (first occurrence wins, so an attachment that is
    also the active file is fenced as active). Paths the reader cannot
    resolve (returns None) are skipped.

    Args:
        read: Returns a document's text for a path, or None if missing.
        active_path: Path of the document currently in focus, if any.
        attached_paths: Additional documents attached to the session.

    Returns:
        Fenced documents concatenated in order, or "" when nothing resolved.
    """
    candidates = [active_path, *(attached_paths or [])]
    unique_paths = list(dict.fromkeys(p for p in candidates if p))

    parts = []
    for path in unique_paths:
        content = read(path)
        if content is None:
            continue
        if path == active_path:
            begin, end = f"--- BEGIN ACTIVE FILE: {path} ---", "--- END ACTIVE FILE ---"
        else:
            begin, end = f"--- BEGIN ATTACHED FILE: {path} ---", "--- END ATTACHED FILE ---"
        parts.append(f"{begin}\n{content}\n{end}\n\n")

    return "".join(parts)
