"""
Post-processing hooks applied to the assembled text of a generation.

A hook is a plain ``str -> str`` callable. Hooks run in registration order
after the provider call and before the result is cached, so cached text is
always post-processed text.
"""

from __future__ import annotations

import re
from typing import Callable, Iterable

from ai_bridge.llm_adapter.errors import ConfigurationError

PostProcessHook = Callable[[str], str]

_CONTROL_CHARS = re.compile(r"[\x00-\x08\x0b\x0c\x0e-\x1f\x7f]")
_FENCED_BLOCK = re.compile(r"^\s*```[\w+-]*\n(.*?)\n?```\s*$", re.DOTALL)


def strip_whitespace(text: str) -> str:
    return text.strip()


def strip_control_characters(text: str) -> str:
    """Remove C0 control characters except tab and newlines."""
    return _CONTROL_CHARS.sub("", text)


def unwrap_code_fence(text: str) -> str:
    """If the whole reply is one fenced block, return the block body."""
    match = _FENCED_BLOCK.match(text)
    return match.group(1) if match else text


BUILTIN_HOOKS: dict[str, PostProcessHook] = {
    "strip_whitespace": strip_whitespace,
    "strip_control_characters": strip_control_characters,
    "unwrap_code_fence": unwrap_code_fence,
}


def hooks_by_name(names: Iterable[str]) -> list[PostProcessHook]:
    hooks = []
    for name in names:
        try:
            hooks.append(BUILTIN_HOOKS[name])
        except KeyError:
            raise ConfigurationError(
                f"Unknown post-processing hook '{name}'. "
                f"Available: {', '.join(sorted(BUILTIN_HOOKS))}"
            ) from None
    return hooks


def apply_hooks(text: str, hooks: Iterable[PostProcessHook]) -> str:
    for hook in hooks:
        try:
            text = hook(text)
        except Exception as exc:
            name = getattr(hook, "__name__", repr(hook))
            raise ConfigurationError(f"Post-processing hook {name} failed: {exc}") from exc
    return text
