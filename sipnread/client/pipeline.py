"""
Pipeline de soumission d'une lecture côté client.

Étapes:
1. Contrôle et redimensionnement local des images (au plus 4).
2. Dépôt parallèle des images, une progression (0-100) rapportée par image. Le dépôt est
   tout ou rien: un seul échec annule la soumission.
3. Analyse IA des URLs déposées.
4. Enregistrement de la lecture. Un échec ici n'efface pas le résultat d'analyse: il est
   renvoyé avec `saved=False` et le message d'erreur d'enregistrement.
"""

from __future__ import annotations

from collections.abc import Callable, Sequence
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from typing import Any

from sipnread.client.api_client import SipNReadClient
from sipnread.client.errors import classify_error
from sipnread.client.images import LocalImage, PreparedImage, resize_image
from sipnread.core.constants import MAX_IMAGES
from sipnread.core.logging import get_logger
from sipnread.domain.errors import SipNReadError, ValidationError

log = get_logger("submission_pipeline")

ProgressCallback = Callable[[int, int], None]


class SubmissionError(Exception):
    """Échec d'une étape de la soumission, avec un message destiné à l'utilisateur."""

    def __init__(self, stage: str, message: str) -> None:
        super().__init__(message)
        self.stage = stage
        self.message = message


@dataclass
class SubmissionResult:
    """Résultat d'une soumission: analyse toujours présente, enregistrement éventuel."""

    photo_urls: list[str]
    analysis: dict[str, Any]
    reading_id: str | None = None
    save_error: str | None = None
    progress: dict[int, int] = field(default_factory=dict)

    @property
    def saved(self) -> bool:
        return self.reading_id is not None


class SubmissionPipeline:
    def __init__(
        self,
        client: SipNReadClient,
        on_progress: ProgressCallback | None = None,
        max_workers: int = MAX_IMAGES,
    ):
        self.client = client
        self.on_progress = on_progress
        self.max_workers = max_workers

    def _report(self, progress: dict[int, int], index: int, pct: int) -> None:
        progress[index] = pct
        if self.on_progress:
            self.on_progress(index, pct)

    def prepare(self, images: Sequence[LocalImage]) -> list[PreparedImage]:
        if not images:
            raise SubmissionError("validation", "Please upload at least one image.")
        if len(images) > MAX_IMAGES:
            raise SubmissionError("validation", f"You can upload a maximum of {MAX_IMAGES} images.")
        try:
            return [resize_image(img) for img in images]
        except ValidationError as err:
            raise SubmissionError("validation", err.message) from err

    def upload_all(self, images: Sequence[PreparedImage], progress: dict[int, int]) -> list[str]:
        """Dépose toutes les images en parallèle; l'ordre des URLs suit celui des images."""

        def _one(index: int, img: PreparedImage) -> str:
            self._report(progress, index, 0)
            url = self.client.upload_image(img.name, img.data, img.mime_type, index)
            self._report(progress, index, 100)
            return url

        workers = max(1, min(self.max_workers, len(images)))
        with ThreadPoolExecutor(max_workers=workers) as pool:
            futures = [pool.submit(_one, i, img) for i, img in enumerate(images)]
            try:
                return [f.result() for f in futures]
            except SipNReadError as err:
                for f in futures:
                    f.cancel()
                log.warning("upload_failed", error=err.message)
                raise SubmissionError(
                    "upload", f"Image upload failed. Please try again. ({err.message})"
                ) from err

    def submit(
        self,
        images: Sequence[LocalImage],
        user_question: str | None = None,
        user_symbol_names: list[str] | None = None,
        reading_type: str | None = None,
    ) -> SubmissionResult:
        prepared = self.prepare(images)
        progress: dict[int, int] = {}
        urls = self.upload_all(prepared, progress)

        symbols = [s.strip() for s in (user_symbol_names or []) if s and s.strip()] or None
        question = (user_question or "").strip() or None
        try:
            analysis = self.client.analyze_tea_leaf_patterns(urls, question, symbols)
        except SipNReadError as err:
            log.warning("analysis_failed", code=err.code, error=err.message)
            raise SubmissionError("analysis", classify_error(err.message)) from err

        result = SubmissionResult(photo_urls=urls, analysis=analysis, progress=progress)
        payload: dict[str, Any] = {
            "imageStorageUrls": urls,
            "aiSymbolsDetected": analysis.get("aiSymbolsDetected", []),
            "aiInterpretation": analysis.get("aiInterpretation", ""),
            "userQuestion": question,
            "userSymbolNames": symbols,
            "readingType": reading_type,
        }
        try:
            result.reading_id = self.client.save_reading_data(payload)
        except SipNReadError as err:
            log.warning("save_failed", code=err.code, error=err.message)
            result.save_error = f"Could not save reading to your profile: {err.message}"
        return result
