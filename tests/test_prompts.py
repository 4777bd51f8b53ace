"""Tests for system prompt assembly."""

from __future__ import annotations

from gmai.prompts import BASE_PROMPT, SRD_URL, build_system_prompt, normalize_document_urls


def test_normalize_document_urls_handles_crlf_and_blanks():
    raw = "https://a.test/rules.pdf\r\n\r\n  https://b.test/homebrew.pdf  \n"

    assert normalize_document_urls(raw) == [
        "https://a.test/rules.pdf",
        "https://b.test/homebrew.pdf",
    ]


def test_normalize_document_urls_accepts_lists():
    assert normalize_document_urls([" https://a.test ", ""]) == ["https://a.test"]
    assert normalize_document_urls(None) == []


def test_prompt_without_documents_or_vault():
    prompt = build_system_prompt()

    assert prompt.startswith(BASE_PROMPT)
    assert SRD_URL in prompt
    assert "REFERENCE DOCUMENTS" not in prompt
    assert prompt.rstrip().endswith('No explaining when to use it unless asked.')


def test_prompt_lists_document_urls():
    prompt = build_system_prompt("https://a.test/rules.pdf\nhttps://b.test/npc.pdf")

    assert "--- USER'S REFERENCE DOCUMENTS (from Settings) ---" in prompt
    assert "- https://a.test/rules.pdf\n- https://b.test/npc.pdf\n---" in prompt


def test_prompt_appends_vault_context_verbatim_before_rules():
    vault_context = "\n\n## GM Vault Content\n\nsentinel block\n"

    prompt = build_system_prompt("", vault_context)

    assert vault_context in prompt
    assert prompt.index("sentinel block") < prompt.index("STRICT RULES:")
