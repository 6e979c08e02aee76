"""
Translation strings for expensebot.

Structure: {language: {module: {key: template}}}

Templates use str.format placeholders. Amounts are pre-formatted by the
caller so the templates stay free of format specs.
"""

from __future__ import annotations

from typing import Any

TRANSLATIONS: dict[str, dict[str, dict[str, str]]] = {
    "es": {
        "periods": {
            "day": "diario",
            "week": "semanal",
            "month": "mensual",
        },
        "alerts": {
            "budget_warning": (
                "*ALERTA {period}*\n"
                "Has gastado el {percentage}% de tu presupuesto\n"
                "${spent} de ${limit} disponible\n"
                "Restante: ${remaining}"
            ),
            "budget_exceeded": (
                "*PRESUPUESTO {period} EXCEDIDO*\n"
                "Gastado: ${spent}\n"
                "Limite: ${limit}\n"
                "Exceso: ${excess}"
            ),
            "unusual_spending": "Gasto inusual en {category}: ${amount} (promedio: ${average})",
            "category_limit": "Limite de categoria excedido: {category} - ${spent} de ${limit}",
            "unusual_time": "Gasto inusual a las {hour}:00 hrs - ${amount}",
            "frequent_spending": "Gastos frecuentes detectados: {count} gastos en 2 horas (${total})",
            "daily_summary_title": "*RESUMEN DEL DIA*",
            "daily_summary_body": (
                "Transacciones: {count}\n"
                "Total gastado: ${total}\n"
                "Progreso diario: {progress}%"
            ),
            "daily_summary_by_category": "*Por categoria:*",
        },
        "insights": {
            "top_category": 'Tu categoria de mayor gasto es "{category}" con ${amount}',
            "top_hour": "Gastas mas a las {hour}:00 hrs (${amount})",
        },
    },
    "en": {
        "periods": {
            "day": "daily",
            "week": "weekly",
            "month": "monthly",
        },
        "alerts": {
            "budget_warning": (
                "*{period} ALERT*\n"
                "You have spent {percentage}% of your budget\n"
                "${spent} of ${limit} available\n"
                "Remaining: ${remaining}"
            ),
            "budget_exceeded": (
                "*{period} BUDGET EXCEEDED*\n"
                "Spent: ${spent}\n"
                "Limit: ${limit}\n"
                "Excess: ${excess}"
            ),
            "unusual_spending": "Unusual expense in {category}: ${amount} (average: ${average})",
            "category_limit": "Category limit exceeded: {category} - ${spent} of ${limit}",
            "unusual_time": "Unusual expense at {hour}:00 - ${amount}",
            "frequent_spending": "Frequent spending detected: {count} expenses in 2 hours (${total})",
            "daily_summary_title": "*DAILY SUMMARY*",
            "daily_summary_body": (
                "Transactions: {count}\n"
                "Total spent: ${total}\n"
                "Daily progress: {progress}%"
            ),
            "daily_summary_by_category": "*By category:*",
        },
        "insights": {
            "top_category": 'Your highest spending category is "{category}" with ${amount}',
            "top_hour": "You spend the most at {hour}:00 (${amount})",
        },
    },
}


def t(lang: str, module: str, key: str, **kwargs: Any) -> str:
    """
    Get a translated string.

    Falls back to Spanish if the translation is not found in the requested
    language.

    Args:
        lang: Language code (es, en)
        module: Module name (e.g., "alerts", "periods")
        key: Translation key
        **kwargs: Optional format variables

    Returns:
        Translated string, or "[module.key]" if no language has it

    Example:
        >>> t("en", "periods", "week")
        'weekly'
    """
    template = TRANSLATIONS.get(lang, {}).get(module, {}).get(key)
    if template is not None:
        if kwargs:
            try:
                return template.format(**kwargs)
            except KeyError:
                # If format fails, return template as-is
                return template
        return template

    if lang != "es":
        return t("es", module, key, **kwargs)

    return f"[{module}.{key}]"


def get_translation_keys(lang: str, module: str) -> list[str]:
    """Get all translation keys for a specific language and module."""
    return list(TRANSLATIONS.get(lang, {}).get(module, {}).keys())
