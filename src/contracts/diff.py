from difflib import SequenceMatcher
from typing import List

from src.contracts.schemas import DiffPart


def diff_lines(old: str, new: str) -> List[DiffPart]:
    """
    Line diff of two texts as a flat list of parts.

    Consecutive lines with the same fate are grouped into one part; a
    replaced block is emitted as its removed part followed by its added part.
    """
    old_lines = (old or "").splitlines(keepends=True)
    new_lines = (new or "").splitlines(keepends=True)

    parts: List[DiffPart] = []
    matcher = SequenceMatcher(a=old_lines, b=new_lines, autojunk=False)
    for tag, i1, i2, j1, j2 in matcher.get_opcodes():
        if tag == "equal":
            parts.append(DiffPart(value="".join(old_lines[i1:i2])))
            continue
        if tag in ("replace", "delete"):
            parts.append(DiffPart(value="".join(old_lines[i1:i2]), removed=True))
        if tag in ("replace", "insert"):
            parts.append(DiffPart(value="".join(new_lines[j1:j2]), added=True))
    return parts
