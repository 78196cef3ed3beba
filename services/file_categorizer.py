# --- START OF FILE services/file_categorizer.py ---
"""
Sorts study files into buckets by file name and builds the delivery order.

Bucket order is also the delivery order for "send all" requests:
primary_doc, highlighted_doc, major_quiz, quiz, practice, solution, other.
"""

import re
from typing import Dict, Iterable, List, Pattern, Sequence, Tuple

from tools.file_entry import FileEntry

PRIMARY_DOC = "primary_doc"
HIGHLIGHTED_DOC = "highlighted_doc"
MAJOR_QUIZ = "major_quiz"
QUIZ = "quiz"
PRACTICE = "practice"
SOLUTION = "solution"
OTHER = "other"

CATEGORY_ORDER = [PRIMARY_DOC, HIGHLIGHTED_DOC, MAJOR_QUIZ, QUIZ, PRACTICE, SOLUTION, OTHER]
DEFAULT_PRIORITY_CAP = 10

# Evaluated top to bottom, first match wins.
# HIGHLIGHTED_DOC must stay ahead of PRIMARY_DOC: "highlighted handout" also matches the handout rule.
CATEGORY_RULES: List[Tuple[Pattern[str], str]] = [
    (re.compile(r'(highlight.*handout|handout.*highlight)', re.IGNORECASE), HIGHLIGHTED_DOC),
    (re.compile(r'\bhandout\b(?!.*highlight)', re.IGNORECASE), PRIMARY_DOC),
    (re.compile(r'grand.*quiz', re.IGNORECASE), MAJOR_QUIZ),
    (re.compile(r'\b(quiz|test)\b', re.IGNORECASE), QUIZ),
    (re.compile(r'practice', re.IGNORECASE), PRACTICE),
    (re.compile(r'solution|solve', re.IGNORECASE), SOLUTION),
]

Categorized = Dict[str, List[FileEntry]]


def classify(file_name: str) -> str:
    for pattern, category in CATEGORY_RULES:
        if pattern.search(file_name):
            return category
    return OTHER


def categorize(files: Iterable[FileEntry]) -> Categorized:
    categorized: Categorized = {category: [] for category in CATEGORY_ORDER}
    for entry in files:
        categorized[classify(entry.name)].append(entry)
    return categorized


def _size_key(entry: FileEntry) -> Tuple[bool, int]:
    # Unknown sizes rank after every known size.
    return (entry.size_bytes is None, entry.size_bytes or 0)


def _is_pdf(entry: FileEntry) -> bool:
    return entry.name.lower().endswith(".pdf")


def prioritize(categorized: Categorized, cap: int = DEFAULT_PRIORITY_CAP) -> List[FileEntry]:
    """
    Builds the short-list sent first:
    the smallest primary doc, every highlighted doc, the first major quiz, then the
    remaining buckets ordered PDF first and smallest first, truncated to cap.
    """
    ranked: List[FileEntry] = []

    primary_docs = categorized.get(PRIMARY_DOC, [])
    if primary_docs:
        # sorted() is stable, so equal sizes keep listing order.
        ranked.append(sorted(primary_docs, key=_size_key)[0])

    ranked.extend(categorized.get(HIGHLIGHTED_DOC, []))

    major_quizzes = categorized.get(MAJOR_QUIZ, [])
    if major_quizzes:
        ranked.append(major_quizzes[0])

    rest: List[FileEntry] = []
    for category in (QUIZ, PRACTICE, SOLUTION, OTHER):
        rest.extend(categorized.get(category, []))
    rest.sort(key=lambda entry: (not _is_pdf(entry),) + _size_key(entry))
    ranked.extend(rest)

    return ranked[:cap]


def ordered_files(categorized: Categorized) -> List[FileEntry]:
    """Every file, bucket by bucket, uncapped."""
    ordered: List[FileEntry] = []
    for category in CATEGORY_ORDER:
        ordered.extend(categorized.get(category, []))
    return ordered


def ranked_files(categorized: Categorized, cap: int = DEFAULT_PRIORITY_CAP) -> List[FileEntry]:
    """The prioritized short-list followed by every remaining file in bucket order."""
    head = prioritize(categorized, cap)
    chosen = {id(entry) for entry in head}
    return head + [entry for entry in ordered_files(categorized) if id(entry) not in chosen]


def filter_by_keywords(files: Sequence[FileEntry], keywords: Sequence[str]) -> List[FileEntry]:
    """Keeps files whose name contains every keyword (case-insensitive)."""
    lowered = [k.lower() for k in keywords if k.strip()]
    if not lowered:
        return list(files)
    return [f for f in files if all(k in f.name.lower() for k in lowered)]


def dedupe_by_name(files: Iterable[FileEntry]) -> List[FileEntry]:
    """Drops later files whose name was already seen; the first occurrence wins."""
    seen = set()
    unique: List[FileEntry] = []
    for entry in files:
        if entry.name in seen:
            continue
        seen.add(entry.name)
        unique.append(entry)
    return unique

# --- END OF FILE services/file_categorizer.py ---
