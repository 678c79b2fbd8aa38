"""
The notes column doubles as a data channel.

Besides human-readable log lines it carries one `[ExKcal: N]` marker holding
the day's cumulative exercise calories. Stored rows depend on this exact
spelling, so the pattern must not change.
"""
import re
from typing import Optional

EXKCAL_PATTERN = re.compile(r'\[ExKcal:\s*(\d+)\]')

TAG_CORRECTION = "[CORRECCIÓN]"
TAG_VOICE = "[Voz]"

def parse_exercise_kcal(notes: Optional[str]) -> int:
    match = EXKCAL_PATTERN.search(notes or "")
    return int(match.group(1)) if match else 0

def encode_marker(exercise_kcal: int) -> str:
    return f"[ExKcal: {max(0, int(exercise_kcal))}]"

def strip_markers(notes: Optional[str]) -> str:
    without = EXKCAL_PATTERN.sub("", notes or "")
    # markers normally sit on their own line; drop the blank lines they leave
    return "\n".join(line for line in without.splitlines() if line.strip()).strip()

def single_line(raw_text: str) -> str:
    return " ".join(raw_text.split())

def entry_line(raw_text: str, tag: Optional[str] = None) -> str:
    text = single_line(raw_text)
    return f"{tag} {text}" if tag else text

def append_entry(notes: Optional[str], raw_text: str, tag: Optional[str], exercise_kcal: int) -> str:
    lines = [strip_markers(notes), entry_line(raw_text, tag), encode_marker(exercise_kcal)]
    return "\n".join(line for line in lines if line).strip()

def untagged(line: str) -> str:
    for tag in (TAG_VOICE, TAG_CORRECTION):
        if line.startswith(tag + " "):
            return line[len(tag) + 1:]
    return line

def remove_entry_line(notes: Optional[str], raw_text: str, exercise_kcal: int) -> str:
    """Drop the newest line logged for `raw_text` and rewrite the marker.

    A line matches only when its text, without the tag, equals the entry's
    text. The marker is only written back when the remaining value is non-zero.
    """
    needle = single_line(raw_text)
    lines = strip_markers(notes).splitlines()
    for i in range(len(lines) - 1, -1, -1):
        if needle and untagged(lines[i]) == needle:
            del lines[i]
            break
    if exercise_kcal > 0:
        lines.append(encode_marker(exercise_kcal))
    return "\n".join(lines).strip()
