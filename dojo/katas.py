"""Load kata lessons from markdown files.

Layout::

    katas/
      phase-01-basics/
        01-hello.md
        02-variables.md
      phase-02-.../

Each file starts with a YAML frontmatter block followed by ``## `` sections
(Concept, Key Insight, Experiment, Expected Output, Challenge, Deep Dive,
Common Mistakes).
"""

import logging
import re
from pathlib import Path
from typing import Any

import yaml
from pydantic import ValidationError

from dojo.models.katas import Kata, KataSummary, PhaseGroup

logger = logging.getLogger("dojo.katas")

DESCRIPTION_SECTIONS = (
    "Concept",
    "Key Insight",
    "Expected Output",
    "Challenge",
    "Deep Dive",
    "Common Mistakes",
)

_CODE_BLOCK_RE = re.compile(r"```(?:python|py)\n(.*?)```", re.DOTALL)


class KataParseError(ValueError):
    pass


def parse_frontmatter(content: str) -> tuple[dict[str, Any], str]:
    trimmed = content.lstrip()
    if not trimmed.startswith("---"):
        raise KataParseError("No frontmatter found")
    rest = trimmed[3:]
    end = rest.find("\n---")
    if end == -1:
        raise KataParseError("Unclosed frontmatter")
    meta = yaml.safe_load(rest[:end]) or {}
    if not isinstance(meta, dict):
        raise KataParseError("Frontmatter must be a mapping")
    return meta, rest[end + 4:].lstrip()


def parse_sections(body: str) -> dict[str, str]:
    sections: dict[str, str] = {}
    current: str | None = None
    lines: list[str] = []
    for line in body.split("\n"):
        if line.startswith("## "):
            if current is not None:
                sections[current] = "\n".join(lines)
            current = line[3:].strip()
            lines = []
        else:
            lines.append(line)
    if current is not None:
        sections[current] = "\n".join(lines)
    return sections


def extract_code_block(section: str | None) -> str:
    if not section:
        return ""
    match = _CODE_BLOCK_RE.search(section)
    return match.group(1).rstrip() if match else ""


def build_description(sections: dict[str, str]) -> str:
    return "\n\n---\n\n".join(
        f"## {name}\n\n{sections[name].strip()}"
        for name in DESCRIPTION_SECTIONS
        if sections.get(name)
    )


def parse_kata(content: str) -> Kata:
    meta, body = parse_frontmatter(content)
    sections = parse_sections(body)

    def section(name: str) -> str:
        return sections.get(name, "").strip()

    try:
        return Kata(
            id=meta["id"],
            phase=meta["phase"],
            phase_title=meta["phase_title"],
            sequence=meta["sequence"],
            title=meta["title"],
            difficulty=meta.get("difficulty") or "beginner",
            tags=meta.get("tags") or [],
            estimated_minutes=meta.get("estimated_minutes") or 10,
            concept=section("Concept"),
            key_insight=section("Key Insight"),
            experiment_code=extract_code_block(sections.get("Experiment")),
            expected_output=section("Expected Output"),
            challenge=section("Challenge"),
            deep_dive=section("Deep Dive"),
            common_mistakes=section("Common Mistakes"),
            description=build_description(sections),
        )
    except KeyError as e:
        raise KataParseError(f"Missing frontmatter field: {e.args[0]}") from e
    except ValidationError as e:
        raise KataParseError(f"Invalid frontmatter: {e.errors()[0]['msg']}") from e


def load_all_katas(katas_dir: str | Path) -> list[Kata]:
    """Parse every ``phase-*/*.md`` file under ``katas_dir`` in sorted order."""
    root = Path(katas_dir)
    if not root.is_dir():
        logger.warning("Katas directory not found: %s", root)
        return []

    katas: list[Kata] = []
    phase_dirs = sorted(p for p in root.iterdir() if p.is_dir() and p.name.startswith("phase-"))
    for phase_dir in phase_dirs:
        for path in sorted(phase_dir.glob("*.md")):
            try:
                katas.append(parse_kata(path.read_text(encoding="utf-8")))
            except (KataParseError, yaml.YAMLError) as e:
                raise KataParseError(f"{path}: {e}") from e
    logger.info("Loaded %d katas from %s", len(katas), root)
    return katas


def build_phase_groups(katas: list[Kata]) -> list[PhaseGroup]:
    groups: dict[int, PhaseGroup] = {}
    for kata in katas:
        group = groups.get(kata.phase)
        if group is None:
            group = groups[kata.phase] = PhaseGroup(phase=kata.phase, title=kata.phase_title, katas=[])
        group.katas.append(KataSummary(id=kata.id, sequence=kata.sequence, title=kata.title))
    return sorted(groups.values(), key=lambda g: g.phase)
