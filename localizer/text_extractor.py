"""Runs the extractors over a project and merges their results."""

import logging
from typing import Callable, Iterable, Optional

from .extractors import BaseTextExtractor, UnityProject, default_extractors
from .project_model import KeyUpdateMode, TranslationMetadata
from .settings import Settings
from .similarity import SimilarityChecker

log = logging.getLogger(__name__)


class ExtractionInProgressError(RuntimeError):
    pass


class TextExtractor:
    """Coordinates the text extractors of one project.

    Extractors run one after another, highest priority first.  A failing
    extractor is logged and reported through ``on_error``; the others
    still run.

    Callbacks (all optional):
        on_started()
        on_extractor_started(extractor)
        on_extractor_finished(extractor, texts)
        on_error(extractor, exception)
        on_complete(texts)
        on_progress(extractor_name, overall_fraction)
    """

    def __init__(self, project: UnityProject, metadata: Optional[TranslationMetadata] = None,
                 settings: Optional[Settings] = None, extractors: Optional[list] = None):
        self.project = project
        self.metadata = metadata if metadata is not None else TranslationMetadata()
        self.settings = settings or Settings()
        if extractors is None:
            extractors = default_extractors(project, self.settings.scene_source)
        self.extractors = sorted(extractors, key=lambda e: e.priority, reverse=True)
        self.similarity = SimilarityChecker.from_settings(self.settings)
        self._running = False
        self._base_progress = 0.0
        self._progress_step = 0.0

        self.on_started: Optional[Callable[[], None]] = None
        self.on_extractor_started: Optional[Callable] = None
        self.on_extractor_finished: Optional[Callable] = None
        self.on_error: Optional[Callable] = None
        self.on_complete: Optional[Callable[[set], None]] = None
        self.on_progress: Optional[Callable[[str, float], None]] = None

    @property
    def is_running(self) -> bool:
        return self._running

    # ── Extractor registry ───────────────────────────────────────

    def get_extractor(self, name: str) -> Optional[BaseTextExtractor]:
        for extractor in self.extractors:
            if extractor.name == name:
                return extractor
        return None

    def is_extractor_enabled(self, extractor: BaseTextExtractor) -> bool:
        return self.settings.is_extractor_enabled(extractor.name, extractor.enabled_by_default)

    def set_extractor_enabled(self, name: str, enabled: bool):
        if self.get_extractor(name) is None:
            raise KeyError(f"Unknown extractor: {name}")
        self.settings.extractor_enabled[name] = enabled

    def enabled_extractors(self) -> list:
        return [e for e in self.extractors if self.is_extractor_enabled(e)]

    # ── Extraction ───────────────────────────────────────────────

    def extract_all_text(self) -> set:
        """Run every enabled extractor; returns the union of their strings."""
        return self._run(self.enabled_extractors())

    def extract_text_from(self, names: Iterable[str]) -> set:
        """Run only the named extractors, enabled or not."""
        selected = []
        for name in names:
            extractor = self.get_extractor(name)
            if extractor is None:
                raise KeyError(f"Unknown extractor: {name}")
            selected.append(extractor)
        return self._run(selected)

    def _run(self, extractors: list) -> set:
        if self._running:
            raise ExtractionInProgressError("An extraction is already running")
        self._running = True
        try:
            return self._extract(extractors)
        finally:
            self._running = False

    def _extract(self, extractors: list) -> set:
        extracted = set()
        if self.on_started:
            self.on_started()
        if self.settings.clear_sources_before_extract:
            self.metadata.clear_all_sources()

        check = self.settings.check_similarity_on_extract
        step = 1.0 / len(extractors) if extractors else 0.0
        for i, extractor in enumerate(extractors):
            self._base_progress, self._progress_step = i * step, step
            extractor.progress_callback = self._report_progress
            if self.on_extractor_started:
                self.on_extractor_started(extractor)
            log.info("Running %s...", extractor.name)
            try:
                texts = extractor.extract(self.metadata)
            except Exception as exc:
                log.exception("Error in %s", extractor.name)
                if self.on_error:
                    self.on_error(extractor, exc)
                continue
            finally:
                extractor.progress_callback = None

            if check:
                self.similarity.check_for_similar_texts(texts, f"extractor {extractor.name}")
                for text in sorted(texts - extracted):
                    self.similarity.check_new_text_similarity(
                        text, extracted, "comparing against existing texts")
            extracted |= texts
            if self.on_extractor_finished:
                self.on_extractor_finished(extractor, texts)

        if check and len(extractors) > 1:
            self.similarity.check_for_similar_texts(extracted, "all extracted text")
        log.info("Extracted %d strings with %d extractors", len(extracted), len(extractors))
        if self.on_complete:
            self.on_complete(extracted)
        return extracted

    def _report_progress(self, name: str, fraction: float):
        if self.on_progress:
            fraction = min(max(fraction, 0.0), 1.0)
            self.on_progress(name, self._base_progress + fraction * self._progress_step)

    # ── Merge into the store ─────────────────────────────────────

    def run_extraction(self, data, mode: Optional[KeyUpdateMode] = None,
                       names: Optional[Iterable[str]] = None) -> dict:
        """Extract, reconcile text states and update the key list of *data*.

        Returns:
            Dict with stats: {"extracted", "new", "recent", "missing",
            "added", "removed"}
        """
        mode = mode or self.settings.update_mode
        previous = list(data.all_keys)
        extracted = self.extract_text_from(names) if names is not None else self.extract_all_text()

        stats = {"extracted": len(extracted)}
        stats.update(self.metadata.reconcile(previous, extracted, mode))
        stats.update(data.update_from_extraction(extracted, mode, self.metadata))
        log.info("Extraction merged (%s): %d new, %d missing, %d added, %d removed",
                 mode.value, stats["new"], stats["missing"], stats["added"], stats["removed"])
        return stats
