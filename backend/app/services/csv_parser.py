"""
Parser degli estratti conto CSV
Progetto: Kontor (Buchhaltung für Kleinunternehmen)

Supporta gli export Vivid in tre layout di intestazione:
- Booking Date, Value Date, Description, Counterparty, Amount, Currency
- Internal operation id, ..., Transaction date, Counterparty name, Reference,
  Payment amount, Payment currency
- Completed date, Counterparty name, Reference, Payment amount, Payment currency

Date e importi vengono normalizzati prima di calcolare l'hash di riga,
così la stessa operazione esportata con impostazioni diverse produce
sempre lo stesso hash.
"""

import csv
import hashlib
import io
import logging
import re
from dataclasses import dataclass, field
from datetime import date
from typing import Optional

from app.schemas.transaction import CsvRowError, TransactionCandidate

logger = logging.getLogger(__name__)

DATE_COLUMNS = ("Completed date", "Transaction date", "Booking Date", "Value Date")
AMOUNT_COLUMNS = ("Payment amount", "Amount")
DESCRIPTION_COLUMNS = ("Description", "Reference", "Document name")
COUNTERPARTY_COLUMNS = ("Counterparty name", "Counterparty")
CURRENCY_COLUMNS = ("Payment currency", "Currency")

_CURRENCY_SYMBOLS = re.compile(r"[€$£¥]")

# (regex, ordine dei gruppi giorno/mese/anno)
_DATE_FORMATS = (
    (re.compile(r"^(\d{2})\.(\d{2})\.(\d{4})$"), (1, 2, 3)),  # DD.MM.YYYY
    (re.compile(r"^(\d{4})-(\d{2})-(\d{2})$"), (3, 2, 1)),  # YYYY-MM-DD
    (re.compile(r"^(\d{2})/(\d{2})/(\d{4})$"), (1, 2, 3)),  # DD/MM/YYYY
    (re.compile(r"^(\d{2})-(\d{2})-(\d{4})$"), (1, 2, 3)),  # DD-MM-YYYY
)

_GERMAN_THOUSANDS = re.compile(r"^[+-]?\d{1,3}(\.\d{3})+(,\d+)?$")
_ENGLISH_THOUSANDS = re.compile(r"^[+-]?\d{1,3}(,\d{3})+(\.\d+)?$")
_DECIMAL_COMMA = re.compile(r"^[+-]?\d+(,\d+)?$")
_PLAIN_NUMBER = re.compile(r"^[+-]?\d+(\.\d+)?$")


def parse_date(value: Optional[str]) -> Optional[date]:
    """
    Interpreta una data nei formati DD.MM.YYYY, YYYY-MM-DD, DD/MM/YYYY, DD-MM-YYYY.

    Returns:
        La data, oppure None se il formato non è riconosciuto o la data non esiste
    """
    if not value:
        return None
    cleaned = value.strip()
    for pattern, (day_group, month_group, year_group) in _DATE_FORMATS:
        match = pattern.match(cleaned)
        if match:
            try:
                return date(
                    int(match.group(year_group)),
                    int(match.group(month_group)),
                    int(match.group(day_group)),
                )
            except ValueError:
                return None
    return None


def parse_amount(value: Optional[str]) -> Optional[float]:
    """
    Interpreta un importo in formato tedesco, inglese o semplice.

    Esempi: "1.234,56", "1,234.56", "123,45", "-89.99", "(100.00)", "€ 12,50"

    Returns:
        L'importo, oppure None se non interpretabile
    """
    if not value:
        return None
    cleaned = value.strip()

    if cleaned.startswith("(") and cleaned.endswith(")"):
        inner = parse_amount(cleaned[1:-1])
        return -inner if inner is not None else None

    normalized = _CURRENCY_SYMBOLS.sub("", re.sub(r"\s+", "", cleaned))

    if _GERMAN_THOUSANDS.match(normalized):
        normalized = normalized.replace(".", "").replace(",", ".")
    elif _ENGLISH_THOUSANDS.match(normalized):
        normalized = normalized.replace(",", "")
    elif _DECIMAL_COMMA.match(normalized):
        normalized = normalized.replace(",", ".")

    if not _PLAIN_NUMBER.match(normalized):
        return None
    return float(normalized)


def generate_csv_row_hash(date_value: str, amount_value: str, description: str) -> str:
    """
    Hash di riga per la deduplicazione degli import CSV.

    sha256 di "data ISO|importo a 2 decimali|descrizione", troncato a
    16 caratteri esadecimali. Se data o importo non sono interpretabili
    si usa il testo grezzo ripulito.
    """
    parsed_date = parse_date(date_value)
    normalized_date = parsed_date.isoformat() if parsed_date else date_value.strip()

    parsed_amount = parse_amount(amount_value)
    if parsed_amount is not None:
        normalized_amount = f"{parsed_amount:.2f}"
    else:
        normalized_amount = re.sub(r"[\s€$£¥,]", "", amount_value)

    hash_input = f"{normalized_date}|{normalized_amount}|{description.strip()}"
    return hashlib.sha256(hash_input.encode("utf-8")).hexdigest()[:16]


def is_valid_csv_filename(filename: Optional[str]) -> bool:
    return bool(filename) and filename.lower().endswith(".csv")


@dataclass
class CsvParseResult:
    """Esito del parsing: righe valide con numero di riga ed errori per riga."""

    rows: list[tuple[int, TransactionCandidate]] = field(default_factory=list)
    errors: list[CsvRowError] = field(default_factory=list)
    total_rows: int = 0


def _first(row: dict, columns: tuple[str, ...]) -> str:
    for column in columns:
        value = row.get(column)
        if value and value.strip():
            return value.strip()
    return ""


def _detect_dialect(content: str):
    sample = content[:4096]
    try:
        return csv.Sniffer().sniff(sample, delimiters=",;\t")
    except csv.Error:
        return csv.excel


def parse_bank_csv(content: str) -> CsvParseResult:
    """
    Parsa il contenuto di un estratto conto CSV.

    Il separatore viene rilevato automaticamente (virgola, punto e
    virgola o tab). Le righe vuote vengono saltate; le righe non valide
    finiscono in errors con il numero di riga del file (intestazione = 1).
    """
    result = CsvParseResult()
    content = content.lstrip("\ufeff")
    if not content.strip():
        return result

    reader = csv.DictReader(io.StringIO(content), dialect=_detect_dialect(content))
    if reader.fieldnames:
        reader.fieldnames = [name.strip() for name in reader.fieldnames]

    for index, raw_row in enumerate(reader):
        row_number = index + 2
        row = {k: v for k, v in raw_row.items() if k is not None and isinstance(v, str)}
        if not any(v.strip() for v in row.values()):
            continue
        result.total_rows += 1

        date_value = _first(row, DATE_COLUMNS)
        if not date_value:
            result.errors.append(CsvRowError(row=row_number, error="Campo data mancante"))
            continue
        amount_value = _first(row, AMOUNT_COLUMNS)
        if not amount_value:
            result.errors.append(CsvRowError(row=row_number, error="Campo importo mancante"))
            continue

        parsed_date = parse_date(date_value)
        if parsed_date is None:
            result.errors.append(
                CsvRowError(row=row_number, error=f'Formato data non valido: "{date_value}"')
            )
            continue
        amount = parse_amount(amount_value)
        if amount is None:
            result.errors.append(
                CsvRowError(row=row_number, error=f'Formato importo non valido: "{amount_value}"')
            )
            continue

        description = _first(row, DESCRIPTION_COLUMNS)
        currency = _CURRENCY_SYMBOLS.sub("", _first(row, CURRENCY_COLUMNS)).strip() or "EUR"

        result.rows.append((
            row_number,
            TransactionCandidate(
                date=parsed_date,
                amount=amount,
                description=description,
                counterparty=_first(row, COUNTERPARTY_COLUMNS) or None,
                currency=currency[:3].upper(),
                csv_row_hash=generate_csv_row_hash(date_value, amount_value, description),
            ),
        ))

    logger.info(
        "CSV analizzato: %s righe, %s valide, %s errori",
        result.total_rows, len(result.rows), len(result.errors),
    )
    return result
