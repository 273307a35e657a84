"""
Prompt templates.

Both builders are pure functions: the same inputs always give the same
prompt text, byte for byte.
"""

from typing import List, Sequence

from gateway.memory import ConversationMessage, MessageRole
from gateway.vector_store import Document

CONVERSATION_HEADER = (
    "Below is our conversation history. "
    "Please answer the latest question based on this history:\n\n"
)
HISTORY_MARKER = "=== Conversation History ===\n"
CURRENT_QUESTION_MARKER = "\n=== Current Question ===\n"
CONVERSATION_FOOTER = "\n\nPlease answer the current question based on the conversation history above:"

ROLE_LABELS = {
    MessageRole.USER: "User: ",
    MessageRole.ASSISTANT: "Assistant: ",
}

RAG_INSTRUCTION = (
    "You are an intelligent assistant. Answer the user's question based on the "
    "context provided below. If the answer cannot be found in the context, say "
    "honestly that you do not know. Do not make up an answer.\n\n"
)
RAG_CONTEXT_MARKER = "### Context:\n"
RAG_QUESTION_MARKER = "### User Question:\n"
RAG_ANSWER_MARKER = "### Answer:\n"


def build_conversation_prompt(history: Sequence[ConversationMessage], message: str) -> str:
    """
    Linearize conversation history plus the current message.

    With no history the message is returned unchanged.
    """
    if not history:
        return message

    parts: List[str] = [CONVERSATION_HEADER, HISTORY_MARKER]
    for msg in history:
        parts.append(ROLE_LABELS.get(msg.role, ROLE_LABELS[MessageRole.ASSISTANT]))
        parts.append(msg.content)
        parts.append("\n")

    parts.append(CURRENT_QUESTION_MARKER)
    parts.append(ROLE_LABELS[MessageRole.USER])
    parts.append(message)
    parts.append(CONVERSATION_FOOTER)

    return "".join(parts)


def build_rag_prompt(query: str, documents: Sequence[Document]) -> str:
    """
    Build the retrieval-augmented prompt.

    Documents are numbered from 1 in the order given; the prompt ends with
    the answer header so the model continues from there.
    """
    parts: List[str] = [RAG_INSTRUCTION, RAG_CONTEXT_MARKER]
    for i, doc in enumerate(documents, 1):
        parts.append(f"Document {i}: {doc.text}\n\n")

    parts.append(RAG_QUESTION_MARKER)
    parts.append(query)
    parts.append("\n\n")
    parts.append(RAG_ANSWER_MARKER)

    return "".join(parts)
