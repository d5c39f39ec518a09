"""
Client layer: non-blocking user notifications.

Failures during authoring (geolocation, enrichment, photo upload) never stop
the user from editing; they are turned into short toast-style messages in
the configured language instead.
"""
import logging
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Optional, Tuple

from arborinsight.config import settings
from arborinsight.domain.exceptions import (
    ArborInsightError,
    UpstreamError,
    ValidationError,
)


logger = logging.getLogger(__name__)

GENERIC = "generic"

# key -> (title, message template)
CATALOG: Dict[str, Dict[str, Tuple[str, str]]] = {
    "pt-BR": {
        "location_obtained": ("Localização obtida", "Coordenadas atualizadas com sua localização atual"),
        "geolocation_denied": (
            "Erro de localização",
            "Não foi possível obter sua localização. Verifique as permissões do navegador.",
        ),
        "geolocation_unavailable": ("Geolocalização não suportada", "Seu navegador não suporta geolocalização"),
        "geocoding_failed": ("Endereço não encontrado", "Não foi possível buscar o endereço; o valor anterior foi mantido."),
        "photo_uploaded": ("Upload concluído", "Foto da árvore enviada com sucesso!"),
        "photo_upload_failed": ("Erro no upload", "Não foi possível enviar a foto. Tente novamente."),
        "species_identified": (
            "Espécie identificada",
            "{species} identificada com {confidence}% de confiança via {source}",
        ),
        "identification_failed": (
            "Erro na identificação",
            "Não foi possível identificar a espécie. Verifique sua conexão e tente novamente.",
        ),
        "species_selected": ("Espécie selecionada", "{species} selecionada como espécie final"),
        "submission_succeeded": ("Sucesso", "Inspeção criada com sucesso!"),
        "submission_failed": ("Erro", "Erro ao criar inspeção"),
        "trees_skipped": ("Árvores ignoradas", "{count} árvore(s) não foram salvas"),
        GENERIC: ("Erro", "Ocorreu um erro inesperado. Tente novamente."),
    },
    "en": {
        "location_obtained": ("Location obtained", "Coordinates updated to your current location"),
        "geolocation_denied": (
            "Location error",
            "Could not get your location. Check the browser permissions.",
        ),
        "geolocation_unavailable": ("Geolocation not supported", "Your browser does not support geolocation"),
        "geocoding_failed": ("Address not found", "Could not look up the address; the previous value was kept."),
        "photo_uploaded": ("Upload complete", "Tree photo uploaded successfully!"),
        "photo_upload_failed": ("Upload error", "Could not upload the photo. Please try again."),
        "species_identified": (
            "Species identified",
            "{species} identified with {confidence}% confidence via {source}",
        ),
        "identification_failed": (
            "Identification error",
            "Could not identify the species. Check your connection and try again.",
        ),
        "species_selected": ("Species selected", "{species} selected as the final species"),
        "submission_succeeded": ("Success", "Inspection created successfully!"),
        "submission_failed": ("Error", "Could not create the inspection"),
        "trees_skipped": ("Trees skipped", "{count} tree(s) were not saved"),
        GENERIC: ("Error", "An unexpected error occurred. Please try again."),
    },
}

DEFAULT_LANGUAGE = "pt-BR"


@dataclass(frozen=True)
class Notification:
    key: str
    level: str
    title: str
    message: str


def safe_detail(error: Optional[BaseException]) -> Optional[str]:
    """
    Detail of an error that can be shown to the user, if any.

    Only validation messages and short textual provider details qualify.
    Anything else (stack traces, provider JSON, unexpected exceptions) is
    replaced by the catalog message.
    """
    if isinstance(error, ValidationError):
        return error.message
    if isinstance(error, UpstreamError) and isinstance(error.detail, str) and len(error.detail) <= 200:
        return error.detail
    return None


class Notifier:
    """
    Collects notifications and forwards them to an optional listener.

    Args:
        language: ``pt-BR`` or ``en``; unknown languages fall back to pt-BR
        listener: Called with every notification, e.g. to render a toast
    """

    def __init__(
        self,
        language: Optional[str] = None,
        listener: Optional[Callable[[Notification], None]] = None,
    ):
        language = language or settings.notification_language
        self.language = language if language in CATALOG else DEFAULT_LANGUAGE
        self.listener = listener
        self.history: List[Notification] = []

    def notify(
        self,
        key: str,
        error: Optional[BaseException] = None,
        level: str = "error",
        **params: Any,
    ) -> Notification:
        catalog = CATALOG[self.language]
        if error is not None and not isinstance(error, ArborInsightError):
            key = GENERIC
        title, template = catalog.get(key, catalog[GENERIC])
        try:
            message = template.format(**params)
        except (KeyError, IndexError):
            title, message = catalog[GENERIC]

        detail = safe_detail(error)
        if detail and detail not in message:
            message = f"{message} ({detail})"

        notification = Notification(key=key, level=level, title=title, message=message)
        self.history.append(notification)
        if error is not None:
            logger.warning(f"Notified {key}: {error}")
        else:
            logger.info(f"Notified {key}")
        if self.listener is not None:
            self.listener(notification)
        return notification

    def info(self, key: str, **params: Any) -> Notification:
        return self.notify(key, level="info", **params)

    def error(self, key: str, error: Optional[BaseException] = None, **params: Any) -> Notification:
        return self.notify(key, error=error, level="error", **params)

    @property
    def last(self) -> Optional[Notification]:
        return self.history[-1] if self.history else None
