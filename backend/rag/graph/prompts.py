"""Prompt templates for action decision and answer synthesis."""

from collections.abc import Sequence

from backend.rag.models.answer import ScoredChunk
from backend.rag.models.chat import ChatRole, ChatTurn

DEFAULT_SYSTEM_HEADER = """You are an expert assistant who answers the user's question using the supplied reference context. Follow the <rules> below when writing your answer.

<rules>
1. Context first: base your answer on the <reference context>. You may use general knowledge to explain what the context says, but never state anything that contradicts it.
2. Admit gaps: if the <reference context> does not contain the answer, say plainly: "I'm sorry, but I couldn't find the answer to that in the information provided." Never guess or invent facts.
3. Cite sources: when helpful, name the context entry an answer comes from (e.g. "... [source: Refund Policy]").
4. Conversation: use the <recent conversation> only to understand what the user means. Earlier turns are not a source of facts unless you are asked to summarize them.
5. Be clear and concise: avoid jargon and lead with the key point.
</rules>"""

NO_KNOWLEDGE_CONTEXT = "No reference context is currently available."
NO_HISTORY = "No conversation history."
NO_SNIPPET = "No initial context was found."

_ACTION_TYPES = (
    "1. KNOWLEDGE_ONLY: the <initial context> alone is enough for a complete answer "
    "(e.g. questions about internal policies or the user's own material).",
    "2. WEB_SEARCH: the <initial context> is empty or irrelevant, or the user clearly wants "
    "current, real-time or external information (news, prices, exchange rates, third parties). "
    "You must produce the best search query in searchQuery.",
    "3. CLARIFY: the question is too ambiguous to tell what is being asked. "
    "You must produce a question for the user in clarificationQuestion.",
    "4. CONVERSATION_SUMMARY: the user explicitly asks for a summary of the conversation or chat "
    "so far. Web search is not allowed.",
    "5. KNOWLEDGE_SUMMARY: the user asks for a summary of their knowledge, uploaded material or "
    "context. Web search is not allowed.",
)

DECISION_SYSTEM_PROMPT = (
    "You are a RAG strategist. You analyse the intent behind a question and pick the best "
    "strategy for answering it. Respond with JSON only."
)


def format_history(turns: Sequence[ChatTurn]) -> str:
    """Render turns oldest first as ``User:``/``Assistant:`` lines."""
    lines = []
    for turn in turns:
        speaker = "User" if turn.role is ChatRole.user else "Assistant"
        lines.append(f"{speaker}: {turn.content}")
    return "\n".join(lines)


def format_snippet(chunks: Sequence[ScoredChunk]) -> str:
    return "\n\n".join(f"[{chunk.document_title}] {chunk.text}" for chunk in chunks)


def resolve_header(instruction: str | None) -> str:
    """An operator instruction, when set, replaces the default header."""
    instruction = (instruction or "").strip()
    return instruction or DEFAULT_SYSTEM_HEADER


def build_decision_prompt(query: str, snippet: str) -> str:
    actions = "\n".join(_ACTION_TYPES)
    return f"""Given the <user question> and the <initial context> (top results of an internal knowledge search), choose exactly one of the {len(_ACTION_TYPES)} actions below and explain why.

<user question>
{query}

<initial context>
{snippet or NO_SNIPPET}

<instructions>
{actions}
Respond only with a JSON object in the format below. Do not add any other text.

<response format>
{{
  "action": "KNOWLEDGE_ONLY | WEB_SEARCH | CLARIFY | CONVERSATION_SUMMARY | KNOWLEDGE_SUMMARY",
  "reason": "why this action fits, in one or two sentences",
  "searchQuery": "the search query when action is WEB_SEARCH, otherwise null",
  "clarificationQuestion": "the question for the user when action is CLARIFY, otherwise null"
}}"""


def build_answer_prompt(
    header: str,
    knowledge_context: str,
    web_context: str,
    history_text: str,
    question: str,
) -> str:
    """Grounded answer prompt: header, contexts, history, question."""
    parts = [
        header,
        f"<reference context>\n{knowledge_context or NO_KNOWLEDGE_CONTEXT}",
    ]
    if web_context:
        parts.append(
            "<web search results>\n"
            f"{web_context}\n"
            "Summarize the key evidence from these results and include source links where possible."
        )
    parts.append(f"<recent conversation>\n{history_text or NO_HISTORY}")
    parts.append(f"<user question>\n{question}")
    parts.append("Now answer the user's question following the rules above.")
    return "\n\n".join(parts)


def build_conversation_summary_prompt(header: str, history_text: str, question: str) -> str:
    return (
        f"{header}\n\n"
        "You are an expert conversation summarizer. Read the recent conversation below and list "
        "the key points, decisions made, and open issues or follow-up tasks. Remove repetition "
        "and use a numbered list.\n\n"
        f"<recent conversation>\n{history_text or NO_HISTORY}\n\n"
        f"<user request>\n{question}"
    )


def build_knowledge_summary_prompt(header: str, context_text: str, question: str) -> str:
    return (
        f"{header}\n\n"
        "You are an expert at summarizing documents. Read the context below (canvas and global "
        "knowledge) and summarize the main topics, key facts, figures or examples, and "
        "conclusions. Use short headings and bullets where they help.\n\n"
        f"<reference context>\n{context_text or NO_KNOWLEDGE_CONTEXT}\n\n"
        f"<user request>\n{question}"
    )
