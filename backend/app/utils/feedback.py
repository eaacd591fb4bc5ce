"""Heuristic feedback for writing and speaking responses.

Scores are deterministic text statistics (sentence capitalisation,
common misspellings, paragraphing, lexical variety, linking words); no
external model is called.
"""

from __future__ import annotations

import re
from typing import List, Optional

COMMON_MISSPELLINGS = {
    'recieve': 'receive',
    'seperate': 'separate',
    'definately': 'definitely',
    'occured': 'occurred',
    'begining': 'beginning',
}
ADVANCED_WORDS = ['furthermore', 'consequently', 'nevertheless', 'substantial', 'comprehensive']
LINKING_WORDS = ['however', 'therefore', 'furthermore', 'moreover', 'consequently', 'additionally']
TASK_MIN_WORDS = {'task1': 150, 'task2': 250}

WRITING_BANDS = [(95, 9.0), (89, 8.5), (83, 8.0), (75, 7.5), (67, 7.0), (58, 6.5), (50, 6.0), (42, 5.5)]

NEXT_LEVEL_REQUIREMENTS = {
    5.5: 'Focus on basic task completion and clear organization',
    6.0: 'Develop ideas more fully and use wider vocabulary',
    6.5: 'Improve coherence and use more complex structures',
    7.0: 'Show sophisticated vocabulary and flexible grammar',
    7.5: 'Demonstrate precise language use and nuanced arguments',
    8.0: 'Show complete command with natural, sophisticated expression',
    8.5: 'Achieve near-native level accuracy and fluency',
}

_WORD_RE = re.compile(r"[A-Za-z][A-Za-z'-]*")


def words(text: Optional[str]) -> List[str]:
    return _WORD_RE.findall(text or "")


def word_count(text: Optional[str]) -> int:
    return len(words(text))


def sentences(text: Optional[str]) -> List[str]:
    return [s.strip() for s in re.split(r"[.!?]+", text or "") if s.strip()]


def paragraphs(text: Optional[str]) -> List[str]:
    return [p for p in re.split(r"\n\s*\n", (text or "").strip()) if p.strip()] or [""]


def _clamp(score: float) -> float:
    return max(0, min(100, score))


def analyze_grammar(text: str) -> dict:
    issues = []
    score = 85
    for sentence in sentences(text):
        if not re.match(r"^[A-Z]", sentence):
            issues.append(f"Sentence should start with a capital letter: '{sentence}'")
            score -= 2
    return {
        'score': _clamp(score),
        'issues': issues,
        'comments': 'Good grammar usage overall.' if not issues else 'Some grammar issues detected.',
    }


def analyze_spelling(text: str) -> dict:
    issues = []
    score = 90
    lower = text.lower()
    for wrong, right in COMMON_MISSPELLINGS.items():
        if wrong in lower:
            issues.append(f"Possible misspelling: '{wrong}' should be '{right}'")
            score -= 5
    return {
        'score': _clamp(score),
        'issues': issues,
        'comments': 'No obvious spelling errors detected.' if not issues else 'Some spelling issues found.',
    }


def analyze_structure(text: str, task_type: str) -> dict:
    score = 75
    issues = []
    paras = paragraphs(text)
    count = word_count(text)
    min_words = TASK_MIN_WORDS.get(task_type, 250)
    if count < min_words:
        issues.append(f"Word count ({count}) is below the minimum requirement ({min_words} words)")
        score -= 15
    if len(paras) < 3:
        issues.append("Consider organizing your response into more paragraphs for better structure")
        score -= 10
    if len(paras[0]) < 50:
        issues.append("Introduction could be more developed")
        score -= 5
    if len(paras[-1]) < 30:
        issues.append("Conclusion could be stronger")
        score -= 5
    return {
        'score': _clamp(score),
        'word_count': count,
        'paragraph_count': len(paras),
        'issues': issues,
        'comments': 'Good overall structure.' if not issues else 'Structure could be improved.',
    }


def analyze_vocabulary(text: str) -> dict:
    tokens = [w.lower() for w in words(text)]
    unique = set(tokens)
    richness = len(unique) / len(tokens) if tokens else 0.0
    score = min(100, richness * 150)
    advanced = sum(1 for w in ADVANCED_WORDS if w in unique)
    score += advanced * 5
    return {
        'score': round(_clamp(score), 2),
        'vocabulary_richness': round(richness, 3),
        'unique_words': len(unique),
        'total_words': len(tokens),
        'advanced_words_used': advanced,
        'comments': 'Good vocabulary variety.' if richness > 0.6 else 'Try to use more varied vocabulary.',
    }


def analyze_fluency(transcript: str) -> dict:
    avg = word_count(transcript) / max(1, len(sentences(transcript)))
    score = _clamp(avg * 8)
    return {
        'score': round(score, 2),
        'words_per_sentence': round(avg, 1),
        'comments': 'Good fluency demonstrated.' if score > 70 else 'Work on speaking more fluently.',
    }


def analyze_coherence(text: str) -> dict:
    lower = text.lower()
    found = sum(1 for w in LINKING_WORDS if w in lower)
    return {
        'score': _clamp(70 + found * 5),
        'linking_words_used': found,
        'comments': 'Good use of linking words.' if found > 2 else 'Try using more linking words for better coherence.',
    }


def identify_strengths(text: str) -> List[str]:
    strengths = []
    if word_count(text) > 200:
        strengths.append("Good length and development of ideas")
    if len(re.findall(r"[.!?]", text)) > 5:
        strengths.append("Good use of varied sentence structures")
    lower = text.lower()
    if any(w in lower for w in ADVANCED_WORDS):
        strengths.append("Use of advanced vocabulary")
    return strengths


def identify_improvements(text: str) -> List[str]:
    improvements = []
    if word_count(text) < 150:
        improvements.append("Develop ideas more fully with additional details and examples")
    if len(paragraphs(text)) < 3:
        improvements.append("Improve organization with clearer paragraph structure")
    lower = text.lower()
    if not any(w in lower for w in ('however', 'therefore', 'furthermore', 'moreover')):
        improvements.append("Use more linking words to improve coherence")
    return improvements


def writing_analysis(text: str, task_type: str = 'task2') -> dict:
    """Criterion-level analysis of an essay, weighted into `overall_score`."""
    grammar = analyze_grammar(text)
    spelling = analyze_spelling(text)
    structure = analyze_structure(text, task_type)
    vocabulary = analyze_vocabulary(text)
    overall = (
        grammar['score'] * 0.3
        + spelling['score'] * 0.2
        + structure['score'] * 0.3
        + vocabulary['score'] * 0.2
    )
    min_words = TASK_MIN_WORDS.get(task_type, 250)
    suggestions = []
    if structure['word_count'] < min_words:
        suggestions.append(f"Expand your response to meet the minimum word requirement ({min_words} words).")
    if structure['paragraph_count'] < 3:
        suggestions.append("Organize your response into clear paragraphs with introduction, body, and conclusion.")
    if task_type == 'task1':
        suggestions.append("Ensure you describe all key features of the visual data.")
        suggestions.append("Use appropriate vocabulary for describing trends and comparisons.")
    else:
        suggestions.append("Make sure to address all parts of the question.")
        suggestions.append("Support your arguments with relevant examples.")
    return {
        'overall_score': round(overall),
        'feedback': {
            'grammar': grammar,
            'spelling': spelling,
            'structure': structure,
            'vocabulary': vocabulary,
        },
        'suggestions': suggestions,
        'strengths': identify_strengths(text),
        'areas_for_improvement': identify_improvements(text),
    }


def speaking_analysis(transcript: str) -> dict:
    """Equal-weight fluency, pronunciation, vocabulary and coherence scores."""
    fluency = analyze_fluency(transcript)
    pronunciation = {
        'score': 75,
        'comments': 'Pronunciation is estimated; no audio analysis is performed.',
    }
    vocabulary = analyze_vocabulary(transcript)
    coherence = analyze_coherence(transcript)
    overall = (fluency['score'] + pronunciation['score'] + vocabulary['score'] + coherence['score']) / 4
    return {
        'overall_score': round(overall),
        'transcription': transcript,
        'feedback': {
            'fluency': fluency,
            'pronunciation': pronunciation,
            'vocabulary': vocabulary,
            'coherence': coherence,
        },
        'suggestions': [
            "Practice speaking at a steady pace with natural pauses.",
            "Use a variety of vocabulary and sentence structures.",
            "Organize your thoughts clearly with introduction, main points, and conclusion.",
            "Practice pronunciation of challenging words.",
        ],
        'strengths': identify_strengths(transcript),
        'areas_for_improvement': identify_improvements(transcript),
    }


def practice_writing_feedback(content: str, word_limit: int, task_type: str = 'task2') -> dict:
    """Feedback stored on a writing practice submission.

    `overall_score` is the mean of the word-count, length and grammar
    scores; the criterion analysis is attached under `analysis`.
    """
    count = word_count(content)
    limit = word_limit or 250
    word_count_score = min(100, count / limit * 100)
    length_score = 80 if count >= limit * 0.8 else 60
    grammar_score = 75
    overall = (word_count_score + length_score + grammar_score) / 3
    return {
        'overall_score': round(overall, 2),
        'word_count': count,
        'character_count': len(content),
        'sentence_count': len(re.findall(r"[.!?]+", content)),
        'scores': {
            'task_achievement': round(length_score, 2),
            'coherence_cohesion': 70,
            'lexical_resource': 75,
            'grammatical_accuracy': round(grammar_score, 2),
        },
        'analysis': writing_analysis(content, task_type),
    }


def speaking_band_from_recording(size: int) -> float:
    """Coarse band from the size of a recording (bytes or encoded chars)."""
    if size <= 0:
        return 0.0
    if size < 1000:
        return 2.0
    if size < 10000:
        return 3.5
    if size < 50000:
        return 4.5
    return 5.5


def practice_speaking_feedback(transcript: Optional[str], recording_size: int) -> dict:
    """Feedback for a speaking practice recording.

    With a transcript the text analysis is used; otherwise the score is
    derived from the recording size band.
    """
    if transcript and transcript.strip():
        return speaking_analysis(transcript)
    band = speaking_band_from_recording(recording_size)
    return {
        'overall_score': round(band / 9 * 100),
        'transcription': None,
        'feedback': {},
        'suggestions': [
            "Submit a transcript with your recording for detailed feedback.",
            "Practice speaking at a steady pace with natural pauses.",
        ],
        'strengths': [],
        'areas_for_improvement': [],
    }


def mock_writing_band(text: Optional[str]) -> float:
    """Band estimate for a mock-test essay, capped at 6.5."""
    text = (text or '').strip()
    if not text:
        return 0.0
    tokens = [w.lower() for w in words(text)]
    count = len(tokens)
    if count == 0:
        return 0.0
    freq: dict = {}
    for token in tokens:
        freq[token] = freq.get(token, 0) + 1
    if max(freq.values()) / count > 0.3:
        return 2.0
    if count < 50:
        band = 1.0
    elif count < 100:
        band = 2.5
    elif count < 150:
        band = 3.5
    elif count < 200:
        band = 4.5
    elif count < 250:
        band = 5.0
    else:
        band = 5.5
    if len(freq) / count > 0.7:
        band += 0.5
    sents = sentences(text)
    if len(sents) >= 5 and count / len(sents) > 10:
        band += 0.5
    return min(band, 6.5)


def writing_band(percentage: float) -> float:
    for threshold, band in WRITING_BANDS:
        if percentage >= threshold:
            return band
    return 5.0


def next_level_requirement(band: float) -> str:
    return NEXT_LEVEL_REQUIREMENTS.get(band + 0.5, 'Continue practicing to maintain excellence')


def detailed_writing_feedback(content: str, word_limit: int, ai_feedback: Optional[dict]) -> dict:
    ai_feedback = ai_feedback or {}
    target = word_limit or 250
    count = word_count(content)
    lower = content.lower()
    sentence_lengths = {word_count(s) for s in sentences(content)}
    tokens = [w.lower() for w in words(content)]
    return {
        'word_analysis': {
            'word_count': count,
            'target_words': target,
            'meets_requirement': count >= target * 0.8,
        },
        'structure_analysis': {
            'has_introduction': len(content.split('.')) > 2,
            'has_conclusion': any(k in lower for k in ('conclusion', 'in summary', 'to conclude')),
            'paragraph_count': content.count("\n\n") + 1,
        },
        'language_analysis': {
            'vocabulary_variety': round(len(set(tokens)) / len(tokens) * 100, 2) if tokens else 0.0,
            'sentence_variety': len(sentence_lengths) > 3,
            'grammar_accuracy': ai_feedback.get('scores', {}).get('grammatical_accuracy', 70),
        },
        'task_response': {
            'addresses_prompt': count > 0,
            'provides_examples': any(k in lower for k in ('for example', 'for instance', 'such as')),
            'clear_position': any(k in lower for k in ('i believe', 'in my opinion', 'i think')),
        },
    }


def writing_improvement_suggestions(content: str, word_limit: int) -> dict:
    target = word_limit or 250
    count = word_count(content)
    lower = content.lower()
    immediate = []
    if count < target * 0.8:
        immediate.append(f"Increase word count - you wrote {count} words but need at least {int(target * 0.8)}")
        immediate.append("Add more examples and explanations to support your points")
    elif count > target * 1.2:
        immediate.append(f"Reduce word count - you wrote {count} words but should aim for around {target}")
        immediate.append("Focus on being more concise and direct")
    if len(content.split('.')) <= 2:
        immediate.append("Add a clear introduction that introduces your topic and main argument")
    if not any(k in lower for k in ('conclusion', 'in summary', 'to conclude')):
        immediate.append("Include a conclusion that summarizes your main points")
    return {
        'immediate': immediate,
        'short_term': [
            'Practice writing within time limits (40 minutes for Task 2)',
            'Study model essays to understand good structure',
            'Build academic vocabulary for your topic areas',
            'Practice using linking words and phrases',
        ],
        'long_term': [
            'Read academic articles to improve vocabulary and style',
            'Practice different essay types (opinion, discussion, problem-solution)',
            'Work on complex sentence structures',
            'Develop critical thinking skills for stronger arguments',
        ],
    }


def band_analysis(ai_feedback: Optional[dict]) -> dict:
    ai_feedback = ai_feedback or {}
    scores = ai_feedback.get('scores', {})
    current = writing_band(ai_feedback.get('overall_score', 65))
    return {
        'current_band': current,
        'target_band': min(9.0, current + 0.5),
        'band_breakdown': {
            'task_achievement': writing_band(scores.get('task_achievement', 70)),
            'coherence_cohesion': writing_band(scores.get('coherence_cohesion', 70)),
            'lexical_resource': writing_band(scores.get('lexical_resource', 75)),
            'grammatical_accuracy': writing_band(scores.get('grammatical_accuracy', 70)),
        },
        'next_level_requirements': next_level_requirement(current),
    }


WRITING_TIPS = {
    '6': {
        'general': [
            'Focus on addressing all parts of the task clearly',
            'Organize your essay with clear paragraphs',
            'Use simple linking words effectively',
            'Aim for 250+ words with clear examples',
        ],
        'task_achievement': [
            'Make sure you answer the question directly',
            'Provide relevant examples for each main point',
            'State your opinion clearly if asked',
        ],
        'coherence_cohesion': [
            'Use basic linking words: however, therefore, for example',
            'Start each paragraph with a clear topic sentence',
            'Use pronouns to avoid repetition',
        ],
    },
    '7': {
        'general': [
            'Develop ideas more fully with detailed explanations',
            'Use a wider range of vocabulary accurately',
            'Vary your sentence structures',
            'Show clear progression of ideas',
        ],
        'lexical_resource': [
            'Use less common vocabulary appropriately',
            'Show awareness of style and collocation',
            'Avoid repetition by using synonyms',
        ],
        'grammatical_accuracy': [
            'Use complex sentences with subordinate clauses',
            'Master conditional sentences',
            'Use passive voice appropriately',
        ],
    },
    '8': {
        'general': [
            'Present sophisticated ideas with nuanced arguments',
            'Use precise vocabulary with natural collocations',
            'Demonstrate flexible use of complex structures',
            'Show subtle understanding of the topic',
        ],
        'task_achievement': [
            'Address all aspects with thorough development',
            'Present clear, relevant, and extended examples',
            'Show sophisticated understanding of the issue',
        ],
    },
    '9': {
        'general': [
            'Demonstrate complete command of language',
            'Use wide range of vocabulary with precision',
            'Show full flexibility in sentence structures',
            'Present highly sophisticated arguments',
        ],
    },
}

_DEFAULT_TIPS = {
    'general': [
        'Practice basic essay structure: introduction, body, conclusion',
        'Focus on clear, simple sentences first',
        'Build vocabulary gradually',
        'Practice writing regularly',
    ],
}


def writing_tips(band_level: str) -> dict:
    """Tips keyed by IELTS writing criterion for a target band ('6'..'9')."""
    tips = {
        'general': [],
        'task_achievement': [],
        'coherence_cohesion': [],
        'lexical_resource': [],
        'grammatical_accuracy': [],
    }
    band = str(band_level).replace('band', '')
    tips.update(WRITING_TIPS.get(band, _DEFAULT_TIPS))
    return tips
