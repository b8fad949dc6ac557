"""Localized labels and dates used in exported documents."""

from __future__ import annotations

from datetime import date, datetime
from typing import Dict, List, Union


DEFAULT_LANGUAGE = "en"

_MONTHS: Dict[str, List[str]] = {
    "en": ["January", "February", "March", "April", "May", "June", "July", "August",
           "September", "October", "November", "December"],
    "it": ["Gennaio", "Febbraio", "Marzo", "Aprile", "Maggio", "Giugno", "Luglio", "Agosto",
           "Settembre", "Ottobre", "Novembre", "Dicembre"],
    "es": ["Enero", "Febrero", "Marzo", "Abril", "Mayo", "Junio", "Julio", "Agosto",
           "Septiembre", "Octubre", "Noviembre", "Diciembre"],
    "fr": ["Janvier", "Février", "Mars", "Avril", "Mai", "Juin", "Juillet", "Août",
           "Septembre", "Octobre", "Novembre", "Décembre"],
    "de": ["Januar", "Februar", "März", "April", "Mai", "Juni", "Juli", "August",
           "September", "Oktober", "November", "Dezember"],
    "pt": ["Janeiro", "Fevereiro", "Março", "Abril", "Maio", "Junho", "Julho", "Agosto",
           "Setembro", "Outubro", "Novembro", "Dezembro"],
}

_LABELS: Dict[str, Dict[str, str]] = {
    "en": {
        "abstract": "abstract",
        "audio_files": "Audio Files",
        "reference_files": "Reference Files",
        "page_label": "p.",
        "pages_label": "pp.",
        "course_label": "Course",
        "date_label": "Date",
        "hour_label": "h",
        "minute_label": "m",
        "second_label": "s",
    },
    "it": {
        "abstract": "sommario",
        "audio_files": "Registrazioni Audio",
        "reference_files": "Materiali di Riferimento",
        "page_label": "p.",
        "pages_label": "pp.",
        "course_label": "Corso",
        "date_label": "Data",
    },
    "es": {
        "abstract": "resumen",
        "audio_files": "Archivos de Audio",
        "reference_files": "Materiales de Referencia",
        "page_label": "pág.",
        "pages_label": "págs.",
        "course_label": "Curso",
        "date_label": "Fecha",
    },
    "fr": {
        "abstract": "résumé",
        "audio_files": "Fichiers Audio",
        "reference_files": "Documents de Référence",
        "page_label": "p.",
        "pages_label": "pp.",
        "course_label": "Cours",
        "date_label": "Date",
    },
    "de": {
        "abstract": "Zusammenfassung",
        "audio_files": "Audiodateien",
        "reference_files": "Referenzmaterialien",
        "page_label": "S.",
        "pages_label": "S.",
        "course_label": "Kurs",
        "date_label": "Datum",
        "hour_label": "Std.",
        "minute_label": "Min.",
        "second_label": "Sek.",
    },
    "pt": {
        "abstract": "resumo",
        "audio_files": "Arquivos de Áudio",
        "reference_files": "Materiais de Referência",
        "page_label": "p.",
        "pages_label": "pp.",
        "course_label": "Curso",
        "date_label": "Data",
    },
}


def base_language(language: str) -> str:
    """Return the primary subtag, e.g. ``"en-US"`` -> ``"en"``."""

    return (language or DEFAULT_LANGUAGE).split("-")[0].lower() or DEFAULT_LANGUAGE


def get_label(language: str, key: str) -> str:
    labels = _LABELS.get(base_language(language), {})
    if key in labels:
        return labels[key]
    return _LABELS[DEFAULT_LANGUAGE].get(key, "")


def format_localized_date(value: Union[date, datetime], language: str) -> str:
    code = base_language(language)
    months = _MONTHS.get(code, _MONTHS[DEFAULT_LANGUAGE])
    month = months[value.month - 1]
    if code in {"it", "es", "fr", "pt"}:
        return f"{value.day} {month} {value.year}"
    if code == "de":
        return f"{value.day}. {month} {value.year}"
    return f"{month} {value.day}, {value.year}"


def format_duration(duration_seconds: int, language: str) -> str:
    """Return ``"1h 5m"``, ``"4m 10s"`` or ``"9s"`` style durations; empty for zero."""

    if duration_seconds <= 0:
        return ""
    hour = get_label(language, "hour_label")
    minute = get_label(language, "minute_label")
    second = get_label(language, "second_label")
    hours, remainder = divmod(int(duration_seconds), 3600)
    minutes, seconds = divmod(remainder, 60)
    if hours > 0:
        return f"{hours}{hour} {minutes}{minute}"
    if minutes > 0:
        return f"{minutes}{minute} {seconds}{second}"
    return f"{seconds}{second}"


__all__ = [
    "DEFAULT_LANGUAGE",
    "base_language",
    "format_duration",
    "format_localized_date",
    "get_label",
]
