"""Decide what ambient text accompanies the prompt."""

from llm_council.models import ContextMode, ResolvedContext


def choose_context(selection: str, document: str, mode: ContextMode | str = ContextMode.AUTO) -> ResolvedContext:
    """Resolve context from an explicit mode plus fallbacks.

    ``none`` always wins. An empty selection under explicit ``selection`` mode
    is not an error: it falls through to the ``auto`` rules.
    """
    mode = ContextMode(mode)
    if mode is ContextMode.NONE:
        return ResolvedContext(kind="none")
    if mode is ContextMode.SELECTION and selection:
        return ResolvedContext(kind="selection", text=selection)
    if mode is ContextMode.FILE:
        return ResolvedContext(kind="file", text=document)
    if selection:
        return ResolvedContext(kind="selection", text=selection)
    if document:
        return ResolvedContext(kind="file", text=document)
    return ResolvedContext(kind="none")


def context_preview(text: str | None, limit: int = 200) -> str:
    """Collapse whitespace and cut to ``limit`` characters, adding an ellipsis."""
    if not text:
        return ""
    flat = " ".join(text.split())
    if len(flat) <= limit:
        return flat
    return flat[:limit].rstrip() + "..."
