# buyer_leads/models/enums.py
"""
Single source of truth for every fixed enumeration of a buyer lead.

Member values are the storage codes. ``City``, ``PropertyType``, ``Purpose``
and ``Status`` use the same text on the wire and in the database; ``BHK``,
``Timeline`` and ``Source`` have separate human labels, kept in
``buyer_leads.services.enum_mapping``.
"""
from __future__ import annotations

from enum import Enum


class City(str, Enum):
    CHANDIGARH = "Chandigarh"
    MOHALI = "Mohali"
    ZIRAKPUR = "Zirakpur"
    PANCHKULA = "Panchkula"
    OTHER = "Other"


class PropertyType(str, Enum):
    APARTMENT = "Apartment"
    VILLA = "Villa"
    PLOT = "Plot"
    OFFICE = "Office"
    RETAIL = "Retail"


# Property types that carry a bedroom count
RESIDENTIAL_TYPES = frozenset({PropertyType.APARTMENT, PropertyType.VILLA})


class BHK(str, Enum):
    STUDIO = "Studio"
    ONE = "One"
    TWO = "Two"
    THREE = "Three"
    FOUR = "Four"


class Purpose(str, Enum):
    BUY = "Buy"
    RENT = "Rent"


class Timeline(str, Enum):
    ZERO_TO_THREE_MONTHS = "ZeroToThreeMonths"
    THREE_TO_SIX_MONTHS = "ThreeToSixMonths"
    MORE_THAN_SIX_MONTHS = "MoreThanSixMonths"
    EXPLORING = "Exploring"


class Source(str, Enum):
    WEBSITE = "Website"
    REFERRAL = "Referral"
    WALK_IN = "WalkIn"
    CALL = "Call"
    OTHER = "Other"


class Status(str, Enum):
    NEW = "New"
    QUALIFIED = "Qualified"
    CONTACTED = "Contacted"
    VISITED = "Visited"
    NEGOTIATION = "Negotiation"
    CONVERTED = "Converted"
    DROPPED = "Dropped"


class Role(str, Enum):
    USER = "USER"
    ADMIN = "ADMIN"
