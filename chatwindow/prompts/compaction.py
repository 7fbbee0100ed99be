"""Prompts for conversation compaction."""

COMPACTION_PROMPT = (
    "Summarize the conversation so far for an assistant. Keep key facts, "
    "constraints, decisions, action items, and unresolved questions. Be concise. "
    "Do not invent details.\n\n"
)

PREVIOUS_SUMMARY_SECTION = "Previous summary: {summary}\n\n"

CONVERSATION_SECTION = "Conversation to summarize:\n"

UPDATE_SUMMARY_PROMPT = (
    "Update this summary with additional context. Keep it concise.\n\n"
    "Existing summary: {summary}\n\n"
    "Additional messages:\n{messages}"
)

LAST_RESORT_PROMPT = (
    "Create an extremely concise summary (max 2-3 sentences) of this conversation.\n\n"
    "Existing summary: {summary}\n\n"
    "Additional messages:\n{messages}"
)

# Markers placed on summaries written without the LLM
FALLBACK_TAG = "[Summarized due to token limit]"
LAST_RESORT_TAG = "[Conversation summary]"
