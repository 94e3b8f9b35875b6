"""
Name matching for imported brands, categories and sub-categories.

Exact matches are resolved locally. When AI matching is enabled the OpenAI
chat API is asked for a verdict; otherwise (or when the call fails) a
substring / edit-distance heuristic decides.
"""
import json
import logging
import re
from dataclasses import dataclass, asdict
from django.conf import settings

logger = logging.getLogger(__name__)

_JSON_FENCE_RE = re.compile(r"```(?:json)?\s*(\{.*?\})\s*```", re.DOTALL | re.IGNORECASE)

FUZZY_CONFIDENCE = 0.7
CREATE_CONFIDENCE = 0.8
MAX_EDIT_DISTANCE = 2


@dataclass
class MatchResult:
    matched: bool
    matched_id: int = None
    matched_name: str = None
    confidence: float = 0.0
    should_create: bool = False
    reason: str = ''

    def to_dict(self):
        return asdict(self)


def levenshtein(a, b):
    """Edit distance between two strings"""
    if a == b:
        return 0
    if not a:
        return len(b)
    if not b:
        return len(a)
    previous = list(range(len(b) + 1))
    for i, char_a in enumerate(a, start=1):
        current = [i]
        for j, char_b in enumerate(b, start=1):
            cost = 0 if char_a == char_b else 1
            current.append(min(previous[j] + 1, current[j - 1] + 1, previous[j - 1] + cost))
        previous = current
    return previous[-1]


def _normalize(value):
    return ' '.join((value or '').lower().split())


def ai_matching_enabled():
    return bool(settings.PRODUCT_MATCHER_AI_ENABLED and settings.OPENAI_API_KEY)


def _extract_json_object(text):
    match = _JSON_FENCE_RE.search(text)
    if match:
        return match.group(1).strip()
    start = text.find('{')
    end = text.rfind('}')
    if 0 <= start < end:
        return text[start:end + 1]
    raise ValueError('No JSON object in AI response')


def ask_ai(text, candidates, item_type):
    """Ask the language model whether text names one of the candidates"""
    from openai import OpenAI

    client = OpenAI(api_key=settings.OPENAI_API_KEY)
    names = [candidate['name'] for candidate in candidates]
    prompt = (
        f"You match {item_type} names for a product catalog import.\n"
        f"Input: {json.dumps(text, ensure_ascii=False)}\n"
        f"Existing {item_type} names: {json.dumps(names, ensure_ascii=False)}\n"
        "Decide whether the input refers to one of the existing names (ignoring typos, accents, "
        "abbreviations and plural forms). Reply with JSON only: "
        '{"matched": bool, "matched_name": string|null, "confidence": number 0..1, '
        '"should_create": bool, "reason": string}'
    )
    completion = client.chat.completions.create(
        model=settings.PRODUCT_MATCHER_MODEL,
        messages=[{'role': 'user', 'content': prompt}],
        temperature=0,
    )
    content = completion.choices[0].message.content or ''
    return json.loads(_extract_json_object(content))


def _fallback_match(text, candidates):
    needle = _normalize(text)
    for candidate in candidates:
        name = _normalize(candidate['name'])
        if needle in name or name in needle or levenshtein(needle, name) <= MAX_EDIT_DISTANCE:
            return MatchResult(
                matched=True,
                matched_id=candidate['id'],
                matched_name=candidate['name'],
                confidence=FUZZY_CONFIDENCE,
                reason='Similar name',
            )
    return MatchResult(matched=False, confidence=CREATE_CONFIDENCE, should_create=True,
                       reason='No similar name found')


def match_name(text, candidates, item_type='item'):
    """
    Match free text against candidates ([{'id': ..., 'name': ...}])

    Returns a MatchResult; should_create is set when the caller ought to
    create a new record for the text.
    """
    if not text or not str(text).strip():
        return MatchResult(matched=False, reason='Empty input')
    text = str(text).strip()
    if not candidates:
        return MatchResult(matched=False, confidence=1.0, should_create=True,
                           reason=f'No existing {item_type} to compare against')

    needle = _normalize(text)
    for candidate in candidates:
        if _normalize(candidate['name']) == needle:
            return MatchResult(matched=True, matched_id=candidate['id'], matched_name=candidate['name'],
                               confidence=1.0, reason='Exact match')

    if ai_matching_enabled():
        try:
            verdict = ask_ai(text, candidates, item_type)
            by_name = {_normalize(candidate['name']): candidate for candidate in candidates}
            picked = by_name.get(_normalize(verdict.get('matched_name') or ''))
            if verdict.get('matched') and picked:
                return MatchResult(matched=True, matched_id=picked['id'], matched_name=picked['name'],
                                   confidence=float(verdict.get('confidence') or FUZZY_CONFIDENCE),
                                   reason=verdict.get('reason') or 'AI match')
            if not verdict.get('matched'):
                return MatchResult(matched=False, confidence=float(verdict.get('confidence') or CREATE_CONFIDENCE),
                                   should_create=bool(verdict.get('should_create', True)),
                                   reason=verdict.get('reason') or 'AI found no match')
        except Exception as e:
            logger.warning(f"AI matching failed for {item_type} '{text}', using similarity fallback: {str(e)}")

    return _fallback_match(text, candidates)


def match_catalog_item(item):
    """
    Resolve brand, category and sub-category names of an import row.

    item: {'brand': ..., 'category': ..., 'sub_category': ...}
    """
    from .models import Brand, Category

    brands = list(Brand.objects.values('id', 'name'))
    categories = list(Category.objects.filter(parent__isnull=True).values('id', 'name'))

    category_match = match_name(item.get('category'), categories, 'category')
    if category_match.matched:
        sub_categories = list(Category.objects.filter(parent_id=category_match.matched_id).values('id', 'name'))
    else:
        sub_categories = list(Category.objects.filter(parent__isnull=False).values('id', 'name'))

    return {
        'brand': match_name(item.get('brand'), brands, 'brand').to_dict(),
        'category': category_match.to_dict(),
        'sub_category': match_name(item.get('sub_category'), sub_categories, 'sub-category').to_dict(),
    }
