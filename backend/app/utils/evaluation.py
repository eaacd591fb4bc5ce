"""Answer evaluation and band conversion for objective modules.

Reading and listening answers are compared with type-aware rules: exact
matching for closed questions, tolerant matching (edit distance,
synonyms, plurals, spelling and number variants) for gap-fill style
questions. A correct answer may list alternatives separated by `|`.
"""

from __future__ import annotations

import re
from typing import Iterable, List, Optional

SYNONYM_GROUPS = [
    ["big", "large", "huge", "enormous", "massive"],
    ["small", "little", "tiny", "minute", "miniature"],
    ["happy", "glad", "joyful", "cheerful", "pleased"],
    ["sad", "unhappy", "sorrowful", "depressed", "miserable"],
    ["fast", "quick", "rapid", "swift", "speedy"],
    ["slow", "sluggish", "gradual", "leisurely"],
    ["smart", "intelligent", "clever", "bright", "wise"],
    ["stupid", "foolish", "dumb", "silly", "ignorant"],
    ["beautiful", "pretty", "attractive", "lovely", "gorgeous"],
    ["ugly", "unattractive", "hideous", "plain"],
    ["important", "significant", "crucial", "vital", "essential"],
    ["difficult", "hard", "challenging", "tough", "complex"],
    ["easy", "simple", "effortless", "straightforward"],
    ["old", "ancient", "elderly", "aged", "antique"],
    ["new", "fresh", "modern", "recent", "novel"],
    ["good", "excellent", "great", "fine", "superb"],
    ["bad", "poor", "terrible", "awful", "horrible"],
]

LISTENING_VARIATIONS = [
    ["1", "one", "first"],
    ["2", "two", "second"],
    ["3", "three", "third"],
    ["jan", "january", "01"],
    ["feb", "february", "02"],
    ["2:30", "2.30", "half past two", "two thirty"],
    ["$50", "50 dollars", "fifty dollars"],
    ["center", "centre"],
    ["color", "colour"],
    ["don't", "do not"],
    ["can't", "cannot"],
    ["won't", "will not"],
]

TFNG_VARIANTS = {
    "true": ["true", "t", "yes", "correct"],
    "false": ["false", "f", "no", "incorrect"],
    "not given": ["not given", "ng", "not mentioned", "no information"],
}

IRREGULAR_PLURALS = {
    "child": "children",
    "person": "people",
    "man": "men",
    "woman": "women",
    "foot": "feet",
    "tooth": "teeth",
}

READING_BANDS = [
    (95, 9.0), (89, 8.5), (83, 8.0), (75, 7.5), (67, 7.0), (58, 6.5), (50, 6.0),
    (42, 5.5), (33, 5.0), (25, 4.5), (17, 4.0), (8, 3.5), (4, 3.0),
]
LISTENING_BANDS = [
    (97, 9.0), (92, 8.5), (87, 8.0), (80, 7.5), (72, 7.0), (65, 6.5), (57, 6.0),
    (50, 5.5), (42, 5.0), (35, 4.5), (27, 4.0), (20, 3.5), (12, 3.0),
]
MOCK_TEST_BANDS = [
    (90, 9.0), (85, 8.5), (80, 8.0), (75, 7.5), (70, 7.0), (65, 6.5), (60, 6.0),
    (55, 5.5), (50, 5.0), (45, 4.5), (40, 4.0), (35, 3.5), (30, 3.0), (25, 2.5),
    (20, 2.0), (15, 1.5), (10, 1.0),
]

_LISTENING_COMPLETION_TYPES = {
    "form_completion", "note_completion", "map_labeling", "diagram_labeling", "table_completion",
}


def normalize(text: Optional[str]) -> str:
    """Lowercase, drop punctuation and collapse whitespace."""
    text = (text or "").strip().lower()
    text = re.sub(r"[^\w\s]", "", text)
    return re.sub(r"\s+", " ", text).strip()


def normalize_listening(text: Optional[str]) -> str:
    text = re.sub(r"[$£€%]", "", (text or ""))
    return normalize(text)


def split_alternatives(correct_answer: Optional[str]) -> List[str]:
    return [c.strip() for c in (correct_answer or "").split("|") if c.strip()]


def levenshtein(a: str, b: str) -> int:
    if a == b:
        return 0
    if not a:
        return len(b)
    if not b:
        return len(a)
    previous = list(range(len(b) + 1))
    for i, ca in enumerate(a, start=1):
        current = [i]
        for j, cb in enumerate(b, start=1):
            cost = 0 if ca == cb else 1
            current.append(min(previous[j] + 1, current[j - 1] + 1, previous[j - 1] + cost))
        previous = current
    return previous[-1]


def similarity(a: str, b: str) -> float:
    longest = max(len(a), len(b))
    if longest == 0:
        return 1.0
    return 1 - levenshtein(a, b) / longest


def _in_same_group(a: str, b: str, groups: Iterable[List[str]]) -> bool:
    for group in groups:
        if a in group and b in group:
            return True
    return False


def _plural_match(a: str, b: str) -> bool:
    if a.rstrip("s") == b.rstrip("s"):
        return True
    for singular, plural in IRREGULAR_PLURALS.items():
        if {a, b} == {singular, plural}:
            return True
    return False


def _fuzzy_reading(user: str, correct: str) -> bool:
    if user == correct:
        return True
    if similarity(user, correct) >= 0.8:
        return True
    if _in_same_group(user, correct, SYNONYM_GROUPS):
        return True
    if _plural_match(user, correct):
        return True
    if len(user) >= 4 and len(correct) >= 4 and (user in correct or correct in user):
        return True
    return False


def _tfng_match(user: str, correct: str) -> bool:
    for variants in TFNG_VARIANTS.values():
        if correct in variants:
            return user in variants
    return user == correct


def _listening_variation_match(user: str, correct: str) -> bool:
    if user == correct:
        return True
    groups = [[normalize_listening(v) for v in group] for group in LISTENING_VARIATIONS]
    return _in_same_group(user, correct, groups)


def _match_one(user_answer: str, correct: str, question_type: str, module: str) -> bool:
    if module == "listening":
        if question_type in _LISTENING_COMPLETION_TYPES:
            return _listening_variation_match(normalize_listening(user_answer), normalize_listening(correct))
        user, expected = normalize_listening(user_answer), normalize_listening(correct)
        if question_type == "multiple_choice":
            return user == expected
        if _listening_variation_match(user, expected):
            return True
        return similarity(user, expected) >= 0.75
    user, expected = normalize(user_answer), normalize(correct)
    if question_type in ("multiple_choice", "matching", "true_false"):
        return user == expected
    if question_type == "true_false_not_given":
        return _tfng_match(user, expected)
    return _fuzzy_reading(user, expected)


def is_answer_correct(user_answer: Optional[str], correct_answer: Optional[str],
                      question_type: str = "multiple_choice", module: str = "reading") -> bool:
    """Return True when `user_answer` matches any accepted alternative.

    Blank answers are never correct.
    """
    if user_answer is None or not str(user_answer).strip():
        return False
    return any(
        _match_one(str(user_answer), alt, question_type or "", module)
        for alt in split_alternatives(correct_answer)
    )


def explain(is_correct: bool, correct_answer: Optional[str], user_answer: Optional[str]) -> str:
    if is_correct:
        return "Correct! Your answer matches the expected response."
    accepted = ", ".join(split_alternatives(correct_answer))
    return f"Incorrect. The correct answer(s): {accepted}. Your answer: {user_answer or ''}"


def _band_from_table(percentage: float, table, floor: float) -> float:
    for threshold, band in table:
        if percentage >= threshold:
            return band
    return floor


def band_for_module(module: str, correct: float, total: float) -> float:
    """Band score for a reading or listening result; 0 when nothing was asked."""
    if not total:
        return 0.0
    percentage = correct / total * 100
    table = LISTENING_BANDS if module == "listening" else READING_BANDS
    return _band_from_table(percentage, table, 2.5)


def mock_test_band(correct: int, total: int) -> float:
    if not total:
        return 0.0
    return _band_from_table(correct / total * 100, MOCK_TEST_BANDS, 0.5)


def round_to_half(value: float) -> float:
    """Round to the nearest 0.5 with halves going up (6.25 -> 6.5)."""
    return int(value * 2 + 0.5) / 2


def evaluate_answers(questions, submitted: dict, module: str) -> dict:
    """Evaluate a whole answer sheet.

    `questions` are objects with `id`, `question_type`, `correct_answer`
    and `points`; `submitted` maps question id to the raw answer. Returns
    per-question results plus a summary with score, band and accuracy.
    """
    results = []
    score = 0.0
    max_score = 0.0
    correct_count = 0
    for q in questions:
        answer = submitted.get(q.id)
        ok = is_answer_correct(answer, q.correct_answer, q.question_type, module)
        points = float(q.points or 1) if ok else 0.0
        max_score += float(q.points or 1)
        score += points
        correct_count += 1 if ok else 0
        results.append({
            'question_id': q.id,
            'question_text': q.question_text,
            'question_type': q.question_type,
            'user_answer': answer,
            'correct_answer': q.correct_answer,
            'is_correct': ok,
            'points_earned': points,
            'explanation': explain(ok, q.correct_answer, answer),
        })
    total = len(results)
    accuracy = round(correct_count / total * 100, 2) if total else 0.0
    return {
        'results': results,
        'summary': {
            'score': score,
            'max_score': max_score,
            'correct_answers': correct_count,
            'total_questions': total,
            'accuracy': accuracy,
            'band_score': band_for_module(module, correct_count, total),
        },
    }
