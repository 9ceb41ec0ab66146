"""Near-duplicate detection between translation keys."""

import logging
from dataclasses import dataclass, field
from difflib import SequenceMatcher
from typing import Callable, Iterable, NamedTuple, Optional, Union

from .project_model import group_key

log = logging.getLogger(__name__)

COMMON_PUNCTUATION = frozenset(".!?,;:-()[]{}")


def levenshtein_distance(s1: str, s2: str) -> int:
    if not s1:
        return len(s2)
    if not s2:
        return len(s1)
    prev = list(range(len(s2) + 1))
    for i, c1 in enumerate(s1, 1):
        cur = [i]
        for j, c2 in enumerate(s2, 1):
            cur.append(min(prev[j] + 1, cur[j - 1] + 1, prev[j - 1] + (c1 != c2)))
        prev = cur
    return prev[-1]


def levenshtein_similarity(s1: str, s2: str) -> float:
    """1 - edit distance / length of the longer string."""
    longest = max(len(s1), len(s2))
    if longest == 0:
        return 1.0
    return 1.0 - levenshtein_distance(s1, s2) / longest


def sequence_similarity(s1: str, s2: str) -> float:
    return SequenceMatcher(None, s1, s2).ratio()


METRICS = {
    "levenshtein": levenshtein_similarity,
    "sequence": sequence_similarity,
}


def remove_punctuation(text: str) -> str:
    return "".join(c for c in text if c not in COMMON_PUNCTUATION).strip()


class SimilarityResult(NamedTuple):
    is_similar: bool
    reason: str
    score: float


@dataclass
class SimilarityGroup:
    texts: list
    selected_text: str
    reason: str
    average_score: float
    source_info: Optional[str] = None

    @property
    def group_key(self) -> str:
        return group_key(self.texts)


@dataclass
class SimilarityChecker:
    """Scores pairs of texts and clusters near-duplicates.

    ``metric`` is a name from METRICS or any callable returning a
    similarity in [0, 1].
    """
    threshold: float = 0.85
    case_threshold: float = 0.95
    punctuation_threshold: float = 0.90
    metric: Union[str, Callable[[str, str], float]] = "levenshtein"
    _metric_fn: Callable = field(init=False, repr=False)

    def __post_init__(self):
        if callable(self.metric):
            self._metric_fn = self.metric
        elif self.metric in METRICS:
            self._metric_fn = METRICS[self.metric]
        else:
            raise ValueError(f"Unknown similarity metric {self.metric!r}; "
                             f"expected one of {', '.join(METRICS)}")

    @classmethod
    def from_settings(cls, settings) -> "SimilarityChecker":
        return cls(
            threshold=settings.similarity_threshold,
            case_threshold=settings.case_similarity_threshold,
            punctuation_threshold=settings.punctuation_similarity_threshold,
            metric=settings.similarity_metric,
        )

    def get_text_similarity(self, text1: str, text2: str) -> SimilarityResult:
        if text1.casefold() == text2.casefold():
            return SimilarityResult(True, "Texts are identical except for letter case", 1.0)

        bare1, bare2 = remove_punctuation(text1), remove_punctuation(text2)
        if bare1.casefold() == bare2.casefold():
            return SimilarityResult(True, "Texts are identical except for punctuation", 0.95)

        score = self._metric_fn(text1, text2)

        if score >= self.case_threshold:
            lowered = self._metric_fn(text1.lower(), text2.lower())
            if lowered > score:
                return SimilarityResult(
                    True, f"Texts are {lowered * 100:.0f}% similar (mainly case differences)",
                    lowered)

        if score >= self.punctuation_threshold:
            bare = self._metric_fn(bare1, bare2)
            if bare > score:
                return SimilarityResult(
                    True, f"Texts are {bare * 100:.0f}% similar (mainly punctuation differences)",
                    bare)

        if score >= self.threshold:
            return SimilarityResult(True, f"Texts are {score * 100:.0f}% similar", score)
        return SimilarityResult(False, "", 0.0)

    # ── Warnings during extraction ───────────────────────────────

    def check_for_similar_texts(self, texts: Iterable[str], source_info: Optional[str] = None) -> int:
        """Log a warning for every similar pair; returns the pair count."""
        items = sorted({t for t in texts if t})
        found = 0
        where = f" in {source_info}" if source_info else ""
        for i, text1 in enumerate(items):
            for text2 in items[i + 1:]:
                result = self.get_text_similarity(text1, text2)
                if result.is_similar:
                    found += 1
                    log.warning('Potential duplicate translation keys found%s:\n1: "%s"\n2: "%s"\n'
                                "Reason: %s", where, text1, text2, result.reason)
        return found

    def check_new_text_similarity(self, new_text: str, existing: Iterable[str],
                                  source_info: Optional[str] = None) -> bool:
        if not new_text:
            return False
        found = False
        where = f" in {source_info}" if source_info else ""
        for text in existing:
            if not text or text == new_text:
                continue
            result = self.get_text_similarity(new_text, text)
            if result.is_similar:
                log.warning('New translation key is similar to existing key%s:\nNew: "%s"\n'
                            'Existing: "%s"\nReason: %s', where, new_text, text, result.reason)
                found = True
        return found

    # ── Grouping ─────────────────────────────────────────────────

    def generate_similarity_report(self, texts: Iterable[str],
                                   source_info: Optional[str] = None) -> list:
        """Cluster similar texts into groups, best average score first.

        Groups are the connected components of the "is similar" relation,
        so the outcome does not depend on the input order.  The longest
        member is pre-selected as canonical text.
        """
        items = sorted({t for t in texts if t})
        parent = {t: t for t in items}

        def find(t):
            while parent[t] != t:
                parent[t] = parent[parent[t]]
                t = parent[t]
            return t

        edges = []
        for i, text1 in enumerate(items):
            for text2 in items[i + 1:]:
                result = self.get_text_similarity(text1, text2)
                if result.is_similar:
                    edges.append((text1, text2, result))
                    root1, root2 = find(text1), find(text2)
                    if root1 != root2:
                        parent[max(root1, root2)] = min(root1, root2)

        members, scores, best = {}, {}, {}
        for text in items:
            members.setdefault(find(text), []).append(text)
        for text1, text2, result in edges:
            root = find(text1)
            scores.setdefault(root, []).append(result.score)
            if root not in best or result.score > best[root].score:
                best[root] = result

        groups = []
        for root, group_texts in members.items():
            if len(group_texts) < 2:
                continue
            groups.append(SimilarityGroup(
                texts=group_texts,
                selected_text=max(group_texts, key=lambda t: (len(t), t)),
                reason=best[root].reason,
                average_score=sum(scores[root]) / len(scores[root]),
                source_info=source_info,
            ))
        groups.sort(key=lambda g: (-g.average_score, g.group_key))
        return groups


def record_groups(metadata, groups: list):
    """Store each group's reason and score in the key registry."""
    for group in groups:
        metadata.set_group_metadata(group.texts, group.reason, group.average_score,
                                    group.source_info)
