"""Keyword extraction shared by the relevance and originality scorers."""

from __future__ import annotations

import re
from typing import Iterable

MIN_KEYWORD_LENGTH = 4

# Only words of MIN_KEYWORD_LENGTH or more characters are listed; shorter
# tokens are discarded before the stop-word check.
STOP_WORDS = frozenset(
    """
    able about above again against also always among animal answer appear area
    base beauty been before began begin behind best better between bird black
    blue boat body book both bring brought build busy care carry center certain
    change check children city class clear close cold color come common complete
    contain correct could country course cover cross dark decide deep develop
    direct distant does done dont door draw drive during early earth ease east
    enough equate even ever example face fact fall family farm fast father feel
    feet field figure fill final fine fire fish five follow food foot force form
    found four free friend from front full game gave girl give gold govern great
    green ground group grow half hand happen hard have head hear heard heat help
    here high hold home horse hour house hundred idea inch interest into island
    just keep kind king knew land language large last late laugh lead learn
    leave left less letter life light line list listen live love machine made
    main mark measure might mile mind minute miss money moon more morning most
    mother mountain move much multiply music must name near need never next
    night north note nothing notice noun numeral object ocean often once open
    order other page paint paper pass pattern person picture piece plain plan
    plane plant play point port pose possible pound power press problem produce
    product pull question quick rain reach read ready real record remember rest
    right river road rock room rule same school science second seem self
    sentence serve several shape ship short should simple since sing slow small
    snow some song soon south space special spell stand star start state stay
    stead step still stood stop story street strong study such sure surface
    system table tail talk teach tell test than that their them then there these
    they think this those though thought thousand three tire together told took
    toward town travel tree turn unit until usual verb very voice vowel wait
    walk want warm watch week well went were west what wheel when which while
    white whole will wind with wonder wood world would young your
    """.split()
)

_NON_WORD = re.compile(r"[^\w\s]")


def extract_keywords(text: str) -> list[str]:
    """Return the distinct keywords of ``text`` in first-seen order.

    Text is lower-cased and stripped of punctuation; tokens shorter than
    :data:`MIN_KEYWORD_LENGTH` and stop words are dropped.
    """

    if not text:
        return []
    seen: set[str] = set()
    keywords: list[str] = []
    for token in _NON_WORD.sub("", text.lower()).split():
        if len(token) < MIN_KEYWORD_LENGTH or token in STOP_WORDS:
            continue
        if token in seen:
            continue
        seen.add(token)
        keywords.append(token)
    return keywords


def keywords_match(left: str, right: str) -> bool:
    """Two keywords match when either contains the other (``vote`` ~ ``voters``)."""

    return left in right or right in left


def count_matching(keywords: Iterable[str], candidates: Iterable[str]) -> int:
    """Count entries of ``keywords`` that match at least one of ``candidates``."""

    pool = list(candidates)
    return sum(1 for word in keywords if any(keywords_match(word, other) for other in pool))


__all__ = [
    "MIN_KEYWORD_LENGTH",
    "STOP_WORDS",
    "count_matching",
    "extract_keywords",
    "keywords_match",
]
