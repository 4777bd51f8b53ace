"""System prompt assembly for the rules assistant."""

from __future__ import annotations

import re
from textwrap import dedent
from typing import Iterable, List, Union

SRD_URL = "https://media.dndbeyond.com/compendium-images/srd/5.2/SP_SRD_CC_v5.2.1.pdf"

BASE_PROMPT = (
    "You are an expert assistant for Dungeons & Dragons 5th edition (D&D 5e). "
    "Your knowledge is based on the official SRD 5.2 (Systems Reference Document) "
    f"under Creative Commons license, available at: {SRD_URL}"
)

DOCUMENTS_TEMPLATE = dedent(
    """

    --- USER'S REFERENCE DOCUMENTS (from Settings) ---
    The user has configured these documents as their reference materials. You MUST treat these as primary sources. When answering, refer to these documents when relevant. Do NOT say you cannot read or access them.

    Document URLs:
    {urls}
    ---"""
).rstrip()

STRICT_RULES = dedent(
    """

    STRICT RULES:
    - Maximum 2-4 short sentences per answer. Never write paragraphs.
    - No introductions like "Generally...", "It depends...", "You could...". Answer the question directly.
    - No suggestions to "consult your document" unless the user explicitly asks where to look. If you don't know the exact rule, give one concrete option and stop.
    - Base answers on: SRD 5.2, user's document URLs, GM Vault. Do NOT say you cannot read PDFs or documents.
    - One skill check suggestion = one line (e.g. "Arcana DC 13"). No explaining when to use it unless asked."""
).rstrip()

_LINE_SPLIT = re.compile(r"\r?\n")


def normalize_document_urls(document_urls: Union[str, Iterable[object], None]) -> List[str]:
    """Split settings text (or a list) into trimmed, non-empty URLs."""

    if document_urls is None:
        return []
    if isinstance(document_urls, str):
        candidates: Iterable[object] = _LINE_SPLIT.split(document_urls)
    else:
        candidates = document_urls
    return [str(url).strip() for url in candidates if str(url).strip()]


def build_system_prompt(
    document_urls: Union[str, Iterable[object], None] = "",
    vault_context: str = "",
) -> str:
    """Build the full system prompt; ``vault_context`` is appended verbatim."""

    prompt = BASE_PROMPT

    urls = normalize_document_urls(document_urls)
    if urls:
        prompt += DOCUMENTS_TEMPLATE.format(urls="\n".join(f"- {url}" for url in urls))

    if vault_context:
        prompt += vault_context

    prompt += STRICT_RULES
    return prompt


__all__ = ["BASE_PROMPT", "SRD_URL", "build_system_prompt", "normalize_document_urls"]
