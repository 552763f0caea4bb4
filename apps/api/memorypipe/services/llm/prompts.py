from __future__ import annotations

SUMMARY_SYSTEM = "You are a helpful assistant that creates concise, accurate summaries."

SUMMARY_TEMPLATES = {
    "bullets": "Summarize the following content in bullet points:\n\n{content}",
    "narrative": "Provide a narrative summary of the following content:\n\n{content}",
    "tldr": "Provide a TL;DR summary of the following content:\n\n{content}",
}

MEMORY_TYPE_TEMPLATE = """Classify the following content as one of: fact, task, insight, or irrelevant. Consider the source type: {source_type}.

Content: {content}

Respond with only the classification:"""


def summary_prompt(fmt: str, content: str) -> str:
    try:
        template = SUMMARY_TEMPLATES[fmt]
    except KeyError:
        raise ValueError(f"Unknown summary format: {fmt}") from None
    return template.format(content=content)


def memory_type_prompt(content: str, source_type: str, excerpt_chars: int = 500) -> str:
    return MEMORY_TYPE_TEMPLATE.format(source_type=source_type, content=content[:excerpt_chars])
