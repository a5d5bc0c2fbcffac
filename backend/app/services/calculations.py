"""
Calcoli Importi Documenti
Progetto: Kontor (Buchhaltung für Kleinunternehmen)

Aritmetica condivisa da preventivi, fatture e movimenti bancari.
Le righe lavorano a precisione piena; l'arrotondamento a 2 decimali
avviene solo in presentazione (round_money).
"""

from typing import Iterable, Protocol


class HasLineTotals(Protocol):
    subtotal: float
    vat_amount: float
    total: float


def calculate_item(quantity: float, unit_price: float, vat_rate: float) -> dict[str, float]:
    """
    Calcola gli importi di una riga.

    Returns:
        dict con subtotal, vat_amount, total (non arrotondati)
    """
    subtotal = quantity * unit_price
    vat_amount = subtotal * vat_rate / 100
    return {
        "subtotal": subtotal,
        "vat_amount": vat_amount,
        "total": subtotal + vat_amount,
    }


def calculate_totals(items: Iterable[HasLineTotals]) -> dict[str, float]:
    """Somme di documento: subtotal, total_vat, total_gross."""
    subtotal = 0.0
    total_vat = 0.0
    total_gross = 0.0
    for item in items:
        subtotal += item.subtotal
        total_vat += item.vat_amount
        total_gross += item.total
    return {
        "subtotal": subtotal,
        "total_vat": total_vat,
        "total_gross": total_gross,
    }


def calculate_transaction_vat(amount: float, vat_rate: float | None) -> float | None:
    """
    IVA contenuta in un movimento bancario.

    Uscite (importo negativo): IVA scorporata dal lordo, con segno.
    Entrate: IVA calcolata sul netto.
    """
    if vat_rate is None:
        return None
    if amount < 0:
        vat = amount - amount / (1 + vat_rate / 100)
    else:
        vat = amount * vat_rate / 100
    return round_money(vat)


def round_money(value: float) -> float:
    """Arrotonda a 2 decimali per report e risposte aggregate."""
    return round(value + 0.0, 2)
