"""
Utility per la normalizzazione dei nomi e dei codici.

Ragioni sociali, nomi di responsabili e di sportelli arrivano come testo
libero da fonti diverse: prima di confrontarli vengono portati in una forma
canonica (minuscolo, senza accenti, senza punteggiatura, senza forma
giuridica finale).
"""

from typing import Any, Dict, Iterable, List, Optional
import re
import unicodedata

LEGAL_SUFFIXES = ("srls", "srl", "sas", "snc", "spa")

_PUNCTUATION_RE = re.compile(r"[^\w\s]")
_WHITESPACE_RE = re.compile(r"\s+")


def strip_accents(value: str) -> str:
    """Rimuove i segni diacritici (è -> e, à -> a)."""
    decomposed = unicodedata.normalize("NFKD", value)
    return "".join(ch for ch in decomposed if not unicodedata.combining(ch))


def normalize_name(value: Any) -> str:
    """
    Porta un nome in forma canonica per il confronto.

    "  Rossi S.r.l. " -> "rossi", "Caffè Nero SAS" -> "caffe nero".

    Args:
        value: Nome da normalizzare (qualsiasi tipo, None ammesso)

    Returns:
        str: Nome normalizzato, stringa vuota se assente
    """
    if value is None:
        return ""
    text = strip_accents(str(value)).lower()
    text = _PUNCTUATION_RE.sub("", text)
    text = _WHITESPACE_RE.sub(" ", text).strip()

    tokens = text.split(" ") if text else []
    while len(tokens) > 1 and tokens[-1] in LEGAL_SUFFIXES:
        tokens.pop()
    return " ".join(tokens)


def names_match(left: Any, right: Any) -> bool:
    """True se i due nomi coincidono dopo la normalizzazione."""
    a = normalize_name(left)
    b = normalize_name(right)
    return bool(a) and a == b


def matches_any(value: Any, candidates: Iterable[Any]) -> bool:
    return any(names_match(value, candidate) for candidate in candidates)


def person_names(user: Optional[Dict[str, Any]]) -> List[str]:
    """Nomi con cui un utente può comparire nei dati: organizzazione, nome completo, username."""
    if not user:
        return []
    full_name = f"{user.get('first_name') or ''} {user.get('last_name') or ''}".strip()
    names = [user.get("organization"), full_name, user.get("username")]
    return [str(name).strip() for name in names if name and str(name).strip()]


def display_name(user: Optional[Dict[str, Any]]) -> Optional[str]:
    if not user:
        return None
    full_name = f"{user.get('first_name') or ''} {user.get('last_name') or ''}".strip()
    return user.get("organization") or full_name or user.get("username")


def normalize_registration(value: Any) -> str:
    """Matricola INPS: maiuscolo, senza spazi."""
    if value is None:
        return ""
    return _WHITESPACE_RE.sub("", str(value)).upper()
