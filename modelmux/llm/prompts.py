"""Prompt fragments added by providers."""

THOUGHTS_SYSTEM_PROMPT = """\
Before answering, think through the problem step by step inside <think></think> tags.
Put only your reasoning inside the tags. After the closing </think> tag, write your \
final answer for the user without repeating the reasoning."""
