from __future__ import annotations

import logging
import re
from pathlib import Path
from typing import Dict, Iterable, List, Mapping, Optional, Sequence, Tuple

import yaml

from bookclub_catalog.core.models import Genre

logger = logging.getLogger(__name__)

_SEGMENT_SPLIT = re.compile(r"[>/]+")

GENRE_KEYWORDS: Dict[Genre, Tuple[str, ...]] = {
    Genre.FICTION: ("fiction", "novel", "novels", "literature", "short stories", "소설", "문학"),
    Genre.MYSTERY: (
        "mystery", "mysteries", "thriller", "thrillers", "crime", "detective", "suspense",
        "추리", "미스터리", "스릴러",
    ),
    Genre.SF_FANTASY: ("science fiction", "sci-fi", "fantasy", "sf", "과학소설", "판타지", "환상문학"),
    Genre.ROMANCE: ("romance", "love stories", "로맨스", "연애"),
    Genre.POETRY: ("poetry", "poems", "drama", "plays", "시", "시집", "희곡"),
    Genre.ESSAY: ("essay", "essays", "memoir", "memoirs", "에세이", "수필"),
    Genre.HISTORY: ("history", "historical", "역사", "한국사", "세계사"),
    Genre.HUMANITIES: ("humanities", "philosophy", "psychology", "linguistics", "인문", "철학", "심리"),
    Genre.SOCIETY: (
        "politics", "political science", "social science", "sociology", "law",
        "사회", "사회과학", "정치", "법",
    ),
    Genre.BUSINESS: (
        "business", "economics", "finance", "marketing", "management", "investing",
        "경제", "경영", "마케팅", "재테크", "투자",
    ),
    Genre.SELF_HELP: ("self-help", "self help", "personal development", "자기계발"),
    Genre.SCIENCE: (
        "science", "mathematics", "physics", "biology", "chemistry", "astronomy",
        "과학", "수학", "물리", "생물", "화학",
    ),
    Genre.TECHNOLOGY: (
        "computers", "computer", "programming", "technology", "engineering",
        "컴퓨터", "모바일", "프로그래밍", "공학",
    ),
    Genre.ARTS: (
        "art", "arts", "music", "photography", "design", "architecture", "film",
        "예술", "대중문화", "음악", "미술", "디자인", "건축", "사진",
    ),
    Genre.RELIGION: ("religion", "religious", "spirituality", "christianity", "buddhism", "종교", "역학"),
    Genre.CHILDREN: (
        "children", "juvenile", "kids", "picture books", "young adult",
        "어린이", "유아", "청소년", "아동", "그림책",
    ),
    Genre.COMICS: ("comics", "graphic novels", "manga", "만화"),
    Genre.TRAVEL: ("travel", "여행"),
    Genre.NONFICTION: ("nonfiction", "non-fiction", "논픽션"),
}


def _split_segments(category_text: str) -> List[str]:
    parts = _SEGMENT_SPLIT.split(category_text or "")
    return [p.strip().lower() for p in parts if p.strip()]


def _compile_keyword(kw: str):
    kw = kw.strip().lower()
    if kw.isascii():
        # Latin keywords match whole words only, so "nonfiction" never hits "fiction"
        rx = re.compile(rf"(?<![a-z]){re.escape(kw)}(?![a-z])")
        return lambda seg: rx.search(seg) is not None
    if len(kw) < 2:
        return lambda seg: seg == kw
    return lambda seg: kw in seg


class GenreClassifier:
    """
    Map a catalog category path ("Fiction>Mystery>Noir", "국내도서>소설/시/희곡>한국소설")
    onto a Genre.

    The most specific segment is checked first, walking back towards the root. Within a
    segment longer keywords win, so "science fiction" beats "fiction". Nothing matching
    means Genre.OTHER; classification never raises.
    """

    def __init__(self, keywords: Optional[Mapping[Genre, Iterable[str]]] = None) -> None:
        table = keywords if keywords is not None else GENRE_KEYWORDS
        pairs: List[Tuple[str, Genre]] = []
        for genre, kws in table.items():
            for kw in kws:
                kw_norm = str(kw or "").strip().lower()
                if kw_norm:
                    pairs.append((kw_norm, genre))
        pairs.sort(key=lambda p: len(p[0]), reverse=True)
        self._matchers = [(_compile_keyword(kw), genre) for kw, genre in pairs]

    def _match_segment(self, segment: str) -> Optional[Genre]:
        for matches, genre in self._matchers:
            if matches(segment):
                return genre
        return None

    def classify(self, category_text) -> Genre:
        if not isinstance(category_text, str):
            category_text = "" if category_text is None else str(category_text)
        for segment in reversed(_split_segments(category_text)):
            genre = self._match_segment(segment)
            if genre is not None:
                return genre
        return Genre.OTHER


_DEFAULT = GenreClassifier()


def classify(category_text, keywords: Optional[Mapping[Genre, Iterable[str]]] = None) -> Genre:
    if keywords is None:
        return _DEFAULT.classify(category_text)
    return GenreClassifier(keywords).classify(category_text)


def _genre_by_name(name: str) -> Optional[Genre]:
    key = (name or "").strip()
    for genre in Genre:
        if key.upper() == genre.name or key.lower() == genre.value.lower():
            return genre
    return None


def load_keyword_table(path: str, *, extend_defaults: bool = True) -> Dict[Genre, Tuple[str, ...]]:
    """
    Load a YAML keyword table, e.g.

        MYSTERY: [noir, whodunit]
        Travel: [guidebooks]

    Keys are Genre names or labels. With extend_defaults the file adds to the built-in
    table; otherwise it replaces it.
    """
    p = Path(path)
    try:
        data = yaml.safe_load(p.read_text(encoding="utf-8")) or {}
    except FileNotFoundError as e:
        raise SystemExit(f"Genre keywords file not found: {p}") from e
    except Exception as e:
        raise SystemExit(f"Failed to read genre keywords file: {p} ({e})") from e
    if not isinstance(data, dict):
        raise SystemExit(f"Genre keywords file must be a mapping: {p}")

    table: Dict[Genre, Tuple[str, ...]] = dict(GENRE_KEYWORDS) if extend_defaults else {}
    for name, values in data.items():
        genre = _genre_by_name(str(name))
        if genre is None:
            logger.warning("Unknown genre in keywords file | file=%s | genre=%s", p, name)
            continue
        if isinstance(values, str):
            values = [values]
        extra: Sequence[str] = [str(v) for v in (values or []) if str(v).strip()]
        base = table.get(genre, ()) if extend_defaults else ()
        table[genre] = tuple(base) + tuple(extra)
    logger.info("Loaded genre keywords: %s (%s genres)", p, len(table))
    return table
