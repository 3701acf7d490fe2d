"""Shared lessons log agents consult across sessions."""

import re
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Union

from loguru import logger

LESSONS_HEADER = """# Lessons Learned

Lessons recorded by agents across sessions. When an agent hits a failure and
finds the resolution, it records it here so later sessions avoid the same mistake.

- Record failures that took significant time to resolve
- Include the intent id for traceability
- Keep descriptions concise and actionable

---

"""

_LESSON = re.compile(
    r"^## Lessons Learned - (.+?)\n- Intent: (.+?)\n- Failure: (.+?)\n- Resolution: (.+?)$",
    re.MULTILINE,
)


@dataclass
class Lesson:
    timestamp: str
    intent_id: str
    failure: str
    resolution: str


def _one_line(text: str) -> str:
    return " ".join(str(text).split())


def create_lessons_file(path: Union[str, Path]) -> bool:
    """Create the lessons file with its header; returns False if it already exists."""
    path = Path(path)
    if path.exists():
        return False
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(LESSONS_HEADER, encoding="utf-8")
    logger.info(f"Created lessons file {path}")
    return True


def append_lesson(path: Union[str, Path], intent_id: str, failure: str, resolution: str) -> Lesson:
    """
    Append one lesson, creating the file with its header when missing.

    Existing content is never rewritten. Multi-line descriptions are folded
    onto a single line so every entry stays parseable.
    """
    path = Path(path)
    create_lessons_file(path)
    lesson = Lesson(
        timestamp=datetime.now(timezone.utc).isoformat(),
        intent_id=_one_line(intent_id),
        failure=_one_line(failure),
        resolution=_one_line(resolution),
    )
    with open(path, "a", encoding="utf-8") as f:
        f.write(
            f"## Lessons Learned - {lesson.timestamp}\n"
            f"- Intent: {lesson.intent_id}\n"
            f"- Failure: {lesson.failure}\n"
            f"- Resolution: {lesson.resolution}\n\n"
        )
    logger.info(f"Recorded lesson for {lesson.intent_id}")
    return lesson


def read_lessons(path: Union[str, Path]) -> list[Lesson]:
    """Parse every lesson in the file; a missing file yields an empty list."""
    path = Path(path)
    if not path.exists():
        return []
    text = path.read_text(encoding="utf-8")
    return [Lesson(*match.groups()) for match in _LESSON.finditer(text)]
