"""Question generation backends for mock-test question banks.

`OpenAIQuestionClient` asks a chat-completions endpoint for a JSON array
of questions. `TemplateQuestionGenerator` produces deterministic
template questions and is used whenever the remote provider is not
configured or has recently failed.
"""

from __future__ import annotations

import json
import logging
import threading
import time
from typing import List, Optional

import httpx

logger = logging.getLogger(__name__)

LEVEL_DESCRIPTIONS = {
    6: 'intermediate level with moderate complexity',
    7: 'upper-intermediate level with good complexity',
    8: 'advanced level with high complexity',
    9: 'expert level with maximum complexity',
}
SYSTEM_PROMPT = (
    'You are an expert IELTS question generator. Generate high-quality, authentic IELTS '
    'questions that match the specified band level difficulty.'
)
MODULE_QUESTION_TYPES = {
    'reading': 'multiple_choice',
    'listening': 'fill_blank',
    'writing': 'essay',
    'speaking': 'part2',
}
POINTS_BY_LEVEL = {6: 1, 7: 2, 8: 3, 9: 4}


class GenerationError(RuntimeError):
    """The remote provider failed or returned unusable content."""


class ProviderStatus:
    """Remembers that the remote provider failed, for `cooldown_seconds`."""

    def __init__(self, cooldown_seconds: int = 3600):
        self.cooldown_seconds = cooldown_seconds
        self._unavailable_until = 0.0
        self._lock = threading.Lock()

    def mark_unavailable(self) -> None:
        with self._lock:
            self._unavailable_until = time.monotonic() + self.cooldown_seconds

    def clear(self) -> None:
        with self._lock:
            self._unavailable_until = 0.0

    def is_unavailable(self) -> bool:
        with self._lock:
            return time.monotonic() < self._unavailable_until


def build_prompt(module_type: str, level: int, count: int) -> str:
    desc = LEVEL_DESCRIPTIONS.get(level, 'intermediate level')
    if module_type == 'reading':
        return (
            f"Generate {count} IELTS Reading questions for band {level} ({desc}).\n"
            "Format each question as JSON with these fields:\n"
            "- question_text: The question\n"
            "- question_type: 'multiple_choice', 'true_false', or 'fill_blank'\n"
            "- correct_answer: The correct answer\n"
            "- options: Array of 4 options for multiple choice (null for others)\n"
            "- passage_text: A short reading passage (2-3 paragraphs)\n"
            "Make questions authentic IELTS style focusing on comprehension, inference, and detail recognition.\n"
            "Return as JSON array: [{question1}, {question2}, ...]"
        )
    if module_type == 'listening':
        return (
            f"Generate {count} IELTS Listening questions for band {level} ({desc}).\n"
            "Format each question as JSON with these fields:\n"
            "- question_text: The question\n"
            "- question_type: 'multiple_choice', 'fill_blank', or 'short_answer'\n"
            "- correct_answer: The correct answer\n"
            "- options: Array of options for multiple choice (null for others)\n"
            "- audio_transcript: Transcript of what would be heard\n"
            "Focus on conversations, lectures, and announcements typical in IELTS.\n"
            "Return as JSON array: [{question1}, {question2}, ...]"
        )
    if module_type == 'writing':
        return (
            f"Generate {count} IELTS Writing prompts for band {level} ({desc}).\n"
            "Format each prompt as JSON with these fields:\n"
            "- question_text: The writing prompt/task\n"
            "- question_type: 'essay' or 'letter'\n"
            "- task_requirements: Specific requirements (word count, format, etc.)\n"
            "- assessment_criteria: Key points for evaluation\n"
            "Include both Task 1 (letters/reports) and Task 2 (essays) variety.\n"
            "Return as JSON array: [{prompt1}, {prompt2}, ...]"
        )
    if module_type == 'speaking':
        return (
            f"Generate {count} IELTS Speaking questions for band {level} ({desc}).\n"
            "Format each question as JSON with these fields:\n"
            "- question_text: The speaking prompt\n"
            "- question_type: 'part1', 'part2', or 'part3'\n"
            "- topic: Main topic area\n"
            "- follow_up_questions: Array of related follow-up questions\n"
            "Cover personal topics, describe/compare tasks, and abstract discussions.\n"
            "Return as JSON array: [{question1}, {question2}, ...]"
        )
    raise ValueError(f"Unsupported module type: {module_type}")


def parse_questions_json(content: str) -> List[dict]:
    """Extract the JSON array between the first '[' and the last ']'."""
    start = content.find('[')
    end = content.rfind(']')
    if start == -1 or end == -1 or end < start:
        raise GenerationError('No valid JSON found in AI response')
    try:
        data = json.loads(content[start:end + 1])
    except json.JSONDecodeError as exc:
        raise GenerationError('Failed to parse AI response JSON') from exc
    if not isinstance(data, list) or not data:
        raise GenerationError('Failed to parse AI response JSON')
    return [item for item in data if isinstance(item, dict) and item.get('question_text')]


class OpenAIQuestionClient:
    """Minimal chat-completions client for question generation."""

    def __init__(self, api_key: str, base_url: str, model: str = 'gpt-3.5-turbo', timeout: float = 30.0,
                 transport: Optional[httpx.BaseTransport] = None):
        if not api_key:
            raise ValueError('OPENAI_API_KEY is not configured')
        self.api_key = api_key
        self.base_url = base_url.rstrip('/')
        self.model = model
        self._client = httpx.Client(timeout=timeout, transport=transport)

    def generate(self, module_type: str, level: int, count: int) -> tuple[List[dict], dict]:
        """Return `(questions, metadata)`; raises `GenerationError` on failure."""
        payload = {
            'model': self.model,
            'messages': [
                {'role': 'system', 'content': SYSTEM_PROMPT},
                {'role': 'user', 'content': build_prompt(module_type, level, count)},
            ],
            'temperature': 0.7,
            'max_tokens': 2000,
        }
        headers = {'Authorization': f'Bearer {self.api_key}', 'Content-Type': 'application/json'}
        try:
            resp = self._client.post(f'{self.base_url}/chat/completions', json=payload, headers=headers)
        except httpx.HTTPError as exc:
            raise GenerationError(f'OpenAI request failed: {exc}') from exc
        if resp.status_code != 200:
            raise GenerationError(f'OpenAI API request failed: {resp.status_code} {resp.text[:200]}')
        try:
            body = resp.json()
        except ValueError as exc:
            raise GenerationError('OpenAI returned a non-JSON response') from exc
        try:
            content = body['choices'][0]['message']['content'] or ''
        except (KeyError, IndexError, TypeError) as exc:
            raise GenerationError('Unexpected OpenAI response shape') from exc
        questions = parse_questions_json(content)
        return questions, {'id': body.get('id'), 'model': body.get('model', self.model)}

    def close(self):
        self._client.close()


_READING_TEMPLATES = [
    ("The Rise of Urban Farming",
     "Cities around the world are turning rooftops and abandoned lots into productive gardens. "
     "Supporters argue that urban farming shortens supply chains and strengthens communities, "
     "while critics point to high start-up costs and limited yields.",
     "According to the passage, what is one criticism of urban farming?",
     ["It harms local communities", "It has high start-up costs", "It lengthens supply chains", "It is banned in most cities"],
     "It has high start-up costs"),
    ("Sleep and Memory",
     "Researchers have found that sleep plays a central role in consolidating memories. During deep sleep "
     "the brain replays the day's experiences, strengthening the neural connections formed while awake.",
     "What happens to the day's experiences during deep sleep?",
     ["They are erased", "They are replayed", "They are ignored", "They are exaggerated"],
     "They are replayed"),
    ("Ocean Plastics",
     "Millions of tonnes of plastic enter the oceans every year. Much of it breaks down into microplastics, "
     "tiny fragments that are eaten by marine animals and can move up the food chain.",
     "What are microplastics, according to the passage?",
     ["Tiny plastic fragments", "A type of plankton", "Recycled bottles", "Marine animals"],
     "Tiny plastic fragments"),
]
_LISTENING_TEMPLATES = [
    ("The library opens at ____ on weekdays.", "nine", "The library opens at nine on weekdays and closes at eight."),
    ("The student's surname is ____.", "Thompson", "My surname is Thompson, T-H-O-M-P-S-O-N."),
    ("The tour costs ____ dollars per person.", "50|fifty", "The guided tour costs fifty dollars per person."),
    ("The meeting has been moved to ____.", "Thursday", "We've moved the meeting to Thursday afternoon."),
]
_WRITING_TEMPLATES = [
    "Some people believe that university education should be free for everyone. To what extent do you agree or disagree?",
    "In many countries, people are living longer. Discuss the advantages and disadvantages of an ageing population.",
    "Some argue that technology has made people less sociable. Discuss both views and give your own opinion.",
]
_SPEAKING_TEMPLATES = [
    ("Describe a place you visited that left a strong impression on you.", "travel"),
    ("Describe a skill you would like to learn in the future.", "learning"),
    ("Describe a person who has influenced your life.", "people"),
    ("Describe a memorable event from your childhood.", "memories"),
]


class TemplateQuestionGenerator:
    """Deterministic question templates, cycled to reach `count`."""

    def generate(self, module_type: str, level: int, count: int) -> List[dict]:
        out = []
        for i in range(count):
            if module_type == 'reading':
                title, passage, text, options, answer = _READING_TEMPLATES[i % len(_READING_TEMPLATES)]
                out.append({
                    'question_text': text,
                    'question_type': 'multiple_choice',
                    'correct_answer': answer,
                    'options': options,
                    'passage_title': title,
                    'passage_text': passage,
                })
            elif module_type == 'listening':
                text, answer, transcript = _LISTENING_TEMPLATES[i % len(_LISTENING_TEMPLATES)]
                out.append({
                    'question_text': text,
                    'question_type': 'fill_blank',
                    'correct_answer': answer,
                    'options': None,
                    'audio_transcript': transcript,
                })
            elif module_type == 'writing':
                text = _WRITING_TEMPLATES[i % len(_WRITING_TEMPLATES)]
                out.append({
                    'question_text': text,
                    'question_type': 'essay',
                    'correct_answer': '',
                    'task_requirements': 'Write at least 250 words.',
                    'assessment_criteria': ['Task response', 'Coherence and cohesion', 'Lexical resource',
                                            'Grammatical range and accuracy'],
                })
            elif module_type == 'speaking':
                text, topic = _SPEAKING_TEMPLATES[i % len(_SPEAKING_TEMPLATES)]
                out.append({
                    'question_text': text,
                    'question_type': 'part2',
                    'correct_answer': '',
                    'topic': topic,
                    'follow_up_questions': [f'Why is {topic} important to you?', f'How has {topic} changed over time?'],
                })
            else:
                raise ValueError(f"Unsupported module type: {module_type}")
        return out
