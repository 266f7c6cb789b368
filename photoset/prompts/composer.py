"""
Prompt block composer. Joins the non-empty blocks of an ordered list.
"""

from typing import Iterable, Optional

BLOCK_SEPARATOR = "\n\n"


def normalize_block(block: Optional[str]) -> str:
    if not isinstance(block, str):
        return ""
    return block.strip()


def compose_prompt_blocks(blocks: Iterable[Optional[str]], separator: str = BLOCK_SEPARATOR) -> str:
    """Strip every block, skip empty/None ones, join the rest in order."""
    return separator.join(b for b in map(normalize_block, blocks) if b).strip()
