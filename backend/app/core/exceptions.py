"""
Eccezioni Custom per l'applicazione.
Progetto: Kontor (Buchhaltung für Kleinunternehmen)

I service sollevano queste eccezioni; l'handler registrato in main.py
le traduce in una risposta JSON {"detail", "error_code", "extra"}.

BusinessValidationError non è pydantic.ValidationError: la prima
segnala una regola contabile violata (fattura bloccata, transizione
non consentita), la seconda un payload malformato. Entrambe → 422.
"""

from typing import Any, Dict, Optional

__all__ = [
    "AppException",
    "NotFoundError",
    "DuplicateError",
    "BusinessValidationError",
    "ConflictError",
    "QuoteAlreadyConvertedError",
    "ConfigurationError",
    "ExternalServiceError",
]


class AppException(Exception):
    """
    Base exception per l'applicazione.

    Le sottoclassi fissano status_code, error_code e default_detail
    come attributi di classe; error_code può essere ristretto per
    singola istanza (es. INVOICE_LOCKED su una BusinessValidationError).

    Attributes:
        status_code: HTTP status code della risposta
        error_code: Codice stabile che il frontend usa per distinguere i casi
        detail: Messaggio leggibile
        extra: Dati strutturati aggiuntivi (id collegati, contatori)
    """

    status_code: int = 500
    error_code: str = "INTERNAL_SERVER_ERROR"
    default_detail: str = "Errore interno"

    def __init__(
        self,
        detail: Optional[str] = None,
        error_code: Optional[str] = None,
        extra: Optional[Dict[str, Any]] = None,
    ) -> None:
        self.detail = detail or self.default_detail
        if error_code is not None:
            self.error_code = error_code
        self.extra = extra
        super().__init__(self.detail)

    def __repr__(self) -> str:
        return f"{type(self).__name__}({self.error_code}: {self.detail})"


class NotFoundError(AppException):
    """Fattura, preventivo, cliente o movimento inesistente."""

    status_code = 404
    error_code = "RESOURCE_NOT_FOUND"
    default_detail = "Risorsa non trovata"


class DuplicateError(AppException):
    """
    Movimento bancario già registrato.

    extra["matched_transaction_id"] indica il movimento esistente.
    """

    status_code = 409
    error_code = "DUPLICATE_RESOURCE"
    default_detail = "Risorsa già esistente"


class BusinessValidationError(ValueError, AppException):
    """
    Violazione di una regola contabile.

    Eredita anche da ValueError così può essere sollevata dai
    validatori Pydantic. Codici specifici usati dai service:

        - INVOICE_LOCKED: fattura inviata o pagata, serve storno o correzione
        - INVOICE_ALREADY_CANCELLED: storno già emesso
        - INVOICE_ALREADY_CORRECTED: correzione già emessa
        - QUOTE_NOT_EDITABLE: preventivo non più in bozza
    """

    status_code = 422
    error_code = "BUSINESS_VALIDATION_ERROR"
    default_detail = "Operazione non consentita"

    def __init__(
        self,
        detail: Optional[str] = None,
        error_code: Optional[str] = None,
        extra: Optional[Dict[str, Any]] = None,
    ) -> None:
        # Salta ValueError.__init__ nella MRO
        AppException.__init__(self, detail, error_code, extra)


class ConflictError(AppException):
    """
    Stato cambiato da una richiesta concorrente arrivata prima.

    Stesso error_code della BusinessValidationError corrispondente,
    status 409 invece di 422.
    """

    status_code = 409
    error_code = "CONFLICT_STATE"
    default_detail = "Conflitto di stato"


class QuoteAlreadyConvertedError(ConflictError):
    """
    Preventivo già convertito in fattura.

    Attributes:
        invoice: Fattura esistente, per reindirizzare l'utente
    """

    error_code = "QUOTE_ALREADY_CONVERTED"

    def __init__(self, invoice: Any) -> None:
        self.invoice = invoice
        super().__init__(
            f"Il preventivo è già stato convertito nella fattura {invoice.invoice_number}",
            extra={
                "invoice_id": str(invoice.id),
                "invoice_number": invoice.invoice_number,
            },
        )


class ConfigurationError(AppException):
    """Problema di deployment (modalità di numerazione sconosciuta, dialetto non supportato)."""

    error_code = "CONFIGURATION_ERROR"
    default_detail = "Configurazione non valida"


class ExternalServiceError(AppException):
    """
    API bancaria non raggiungibile o credenziali scadute.

    Le pagine già importate prima dell'errore restano salvate.
    """

    status_code = 502
    error_code = "EXTERNAL_SERVICE_ERROR"
    default_detail = "Servizio esterno non disponibile"
