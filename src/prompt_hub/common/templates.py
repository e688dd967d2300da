"""Prompt templating helpers."""
from __future__ import annotations

DEFAULT_SYSTEM_PROMPT = "You are a helpful assistant."

def render_user_content(prompt: str, user_input: str | None = None) -> str:
    """
    Combine the prompt with the optional auxiliary input.

    Args:
        prompt: Prompt text.
        user_input: Extra input; appended under an "Input:" header when not blank.

    Returns:
        Content of the single user message.
    """
    if user_input is None or not user_input.strip():
        return prompt
    return f"{prompt}\n\nInput:\n{user_input}"

def build_messages(
    prompt: str,
    user_input: str | None = None,
    system_prompt: str | None = None,
) -> list[dict[str, str]]:
    """Build a chat-completions ``messages`` list (optional system + one user message)."""
    messages = []
    if system_prompt:
        messages.append({"role": "system", "content": system_prompt})
    messages.append({"role": "user", "content": render_user_content(prompt, user_input)})
    return messages
