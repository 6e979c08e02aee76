"""
Static lookup tables for expense parsing and categorization.

Read-only data: loaded once at import, never mutated. Terms are stored
already normalized (lowercase, unaccented).

- DESCRIPTION_HINTS: terms the parser falls back to when a match carries no
  usable description. Scanned in declaration order, first hit wins.
- BRANDS / LOCATIONS / ACTIONS: auxiliary per-category dictionaries used by
  the categorization engine with weights 8 / 6 / 4.
- DEFAULT_CATEGORIES: the seed category directory for fresh storages.
"""

from __future__ import annotations

from types import MappingProxyType
from typing import Mapping

# Parser context fallback (category -> terms), ordered
DESCRIPTION_HINTS: Mapping[str, tuple[str, ...]] = MappingProxyType({
    "comida": ("taco", "comida", "restaurante", "pizza", "hamburgues", "torta"),
    "transporte": ("uber", "taxi", "gasolina", "combustible", "camion", "metro"),
    "entretenimiento": ("cine", "bar", "cerveza", "antro", "pelicula"),
    "compras": ("ropa", "zapatos", "camisa", "pantalon", "vestido"),
    "servicios": ("luz", "agua", "internet", "telefono", "netflix"),
    "salud": ("medicina", "doctor", "farmacia", "consulta", "dentista"),
})

BRANDS: Mapping[str, tuple[str, ...]] = MappingProxyType({
    "comida": ("mcdonalds", "kfc", "subway", "dominos", "starbucks", "oxxo"),
    "transporte": ("pemex", "shell", "bp", "mobil"),
    "entretenimiento": ("netflix", "spotify", "amazon prime", "disney"),
    "compras": ("amazon", "mercadolibre", "liverpool", "palacio"),
    "servicios": ("telmex", "izzi", "totalplay", "telcel"),
})

LOCATIONS: Mapping[str, tuple[str, ...]] = MappingProxyType({
    "comida": ("restaurante", "cocina", "bar", "cafe", "cafeteria"),
    "transporte": ("gasolinera", "estacion", "terminal", "aeropuerto"),
    "entretenimiento": ("cine", "teatro", "estadio", "parque"),
    "compras": ("tienda", "mall", "plaza", "centro comercial"),
    "salud": ("hospital", "clinica", "farmacia", "consultorio"),
})

ACTIONS: Mapping[str, tuple[str, ...]] = MappingProxyType({
    "comida": ("comer", "almorzar", "cenar", "desayunar", "merendar"),
    "transporte": ("viajar", "manejar", "conducir", "transportar"),
    "entretenimiento": ("divertir", "jugar", "ver", "escuchar"),
    "compras": ("comprar", "adquirir", "conseguir"),
    "salud": ("curar", "medicar", "consultar", "tratar"),
})

# Seed directory, in canonical (alphabetical) order; "other" carries no keywords
DEFAULT_CATEGORIES: tuple[tuple[str, tuple[str, ...]], ...] = (
    ("comida", ("restaurante", "comida", "tacos", "delivery", "rappi", "ubereats")),
    ("compras", ("amazon", "mercadolibre", "ropa")),
    ("entretenimiento", ("cine", "bar", "antro", "apple music", "prime", "hbo max")),
    ("gastos_fijos", ("super", "renta")),
    ("other", ()),
    ("salud", ("dermatologo", "dentista", "medicina", "farmacia", "consulta")),
    ("servicios", ("luz", "agua", "internet", "telefono")),
    ("transporte", ("uber", "gasolina", "taxi", "camion", "tren")),
)
