"""Normalization of free-text customer profile fields into search filters."""

import re
from dataclasses import dataclass

US_STATES: dict[str, str] = {
    "alabama": "AL",
    "alaska": "AK",
    "arizona": "AZ",
    "arkansas": "AR",
    "california": "CA",
    "colorado": "CO",
    "connecticut": "CT",
    "delaware": "DE",
    "district of columbia": "DC",
    "florida": "FL",
    "georgia": "GA",
    "hawaii": "HI",
    "idaho": "ID",
    "illinois": "IL",
    "indiana": "IN",
    "iowa": "IA",
    "kansas": "KS",
    "kentucky": "KY",
    "louisiana": "LA",
    "maine": "ME",
    "maryland": "MD",
    "massachusetts": "MA",
    "michigan": "MI",
    "minnesota": "MN",
    "mississippi": "MS",
    "missouri": "MO",
    "montana": "MT",
    "nebraska": "NE",
    "nevada": "NV",
    "new hampshire": "NH",
    "new jersey": "NJ",
    "new mexico": "NM",
    "new york": "NY",
    "north carolina": "NC",
    "north dakota": "ND",
    "ohio": "OH",
    "oklahoma": "OK",
    "oregon": "OR",
    "pennsylvania": "PA",
    "rhode island": "RI",
    "south carolina": "SC",
    "south dakota": "SD",
    "tennessee": "TN",
    "texas": "TX",
    "utah": "UT",
    "vermont": "VT",
    "virginia": "VA",
    "washington": "WA",
    "west virginia": "WV",
    "wisconsin": "WI",
    "wyoming": "WY",
}
STATE_CODES = frozenset(US_STATES.values())

INSURANCE_TYPES = frozenset(
    {"auto", "home", "life", "renters", "pet", "health", "disability", "umbrella"}
)
_INSURANCE_ALIASES = {
    "car": "auto",
    "vehicle": "auto",
    "automobile": "auto",
    "homeowners": "home",
    "homeowner": "home",
    "property": "home",
    "renter": "renters",
}

_COUNTRY_SUFFIXES = {"us", "usa", "u.s.a", "u.s", "united states"}
_ZIP_SUFFIX = re.compile(r"\s+\d{5}(?:-\d{4})?$")
_STATE_ABBR = re.compile(r"^([A-Za-z]{2})\.?$")


@dataclass(frozen=True)
class Location:
    """City and two-letter state code parsed from a profile location."""

    city: str | None
    state: str


def normalize_state(text: str | None) -> str | None:
    """Map a state name or postal code to its two-letter code.

    Returns:
        Upper-case postal code, or None if the text is not a US state.
    """
    if not text:
        return None
    cleaned = _ZIP_SUFFIX.sub("", " ".join(text.split())).strip(" .,")
    if not cleaned:
        return None

    abbr = _STATE_ABBR.match(cleaned)
    if abbr:
        code = abbr.group(1).upper()
        return code if code in STATE_CODES else None

    return US_STATES.get(cleaned.lower())


def parse_location(text: str | None) -> Location | None:
    """Parse ``"City, ST"`` style locations.

    Accepts ``"Austin, TX"``, ``"Austin, Texas"``, ``"Austin, TX 78701"`` and a
    bare state such as ``"Texas"``. Anything else yields None rather than a
    partial guess.

    Returns:
        Parsed Location, or None when no US state can be identified.
    """
    if not text or not text.strip():
        return None

    if "," not in text:
        state = normalize_state(text)
        return Location(city=None, state=state) if state else None

    city_part, _, state_part = text.rpartition(",")
    if state_part.strip(" .").lower() in _COUNTRY_SUFFIXES:
        return parse_location(city_part)

    state = normalize_state(state_part)
    if state is None:
        return None

    city = " ".join(city_part.split()).strip(" ,")
    return Location(city=city or None, state=state)


def normalize_insurance_type(text: str | None) -> str | None:
    """Map a line-of-business label to one of the known insurance types.

    Returns:
        Lower-case insurance type, or None if unrecognized.
    """
    if not text:
        return None
    cleaned = " ".join(text.split()).lower()
    if cleaned in INSURANCE_TYPES:
        return cleaned
    cleaned = cleaned.removesuffix(" insurance").strip()
    if cleaned in INSURANCE_TYPES:
        return cleaned
    return _INSURANCE_ALIASES.get(cleaned)
