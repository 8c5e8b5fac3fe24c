"""
Type-directed input sanitization and threat detection.

The same sanitizer guards both directions:
- inbound (ingest): any detected threat rejects the record
- outbound (export): values are neutralized and the export continues,
  since stored data already passed the ingest gate

Everything here is a pure function of its arguments; one instance is
shared by all chunk workers without locking.
"""

import re
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Iterable, Iterator

FIELD_TYPE_EMAIL = "email"
FIELD_TYPE_PHONE = "phone"
FIELD_TYPE_TEXT = "text"


class ThreatType(str, Enum):
    SCRIPT_TAG = "script_tag"
    SQL_INJECTION = "sql_injection"
    PATH_TRAVERSAL = "path_traversal"


THREAT_PATTERNS: dict[ThreatType, re.Pattern] = {
    ThreatType.SCRIPT_TAG: re.compile(
        r"<\s*/?\s*script\b|javascript\s*:|<[^>]*\son[a-z]+\s*=",
        re.IGNORECASE,
    ),
    ThreatType.SQL_INJECTION: re.compile(
        r";\s*(drop|delete|insert|update|alter|truncate|create|exec)\b"
        r"|\bunion\s+(all\s+)?select\b"
        r"|['\"]\s*(or|and)\s+['\"\w]+\s*=\s*['\"\w]+"
        r"|['\";]\s*--"
        r"|['\"]\s*/\*"
        r"|\b(select|union|insert|update|delete|drop|or|and|where|from)\s*/\*"
        r"|\*/\s*(select|union|insert|update|delete|drop|or|and|where|from)\b"
        r"|\bxp_\w+",
        re.IGNORECASE,
    ),
    ThreatType.PATH_TRAVERSAL: re.compile(
        r"\.\./|\.\.\\|%2e%2e(%2f|%5c|/|\\)",
        re.IGNORECASE,
    ),
}

SCRIPT_BLOCK = re.compile(r"<\s*script\b[^>]*>.*?<\s*/\s*script\s*>", re.IGNORECASE | re.DOTALL)
HTML_TAG = re.compile(r"</?[a-z][^<>]*>|<!--.*?-->", re.IGNORECASE | re.DOTALL)
CONTROL_CHARS = re.compile(r"[\x00-\x08\x0b\x0c\x0e-\x1f\x7f]")
EMAIL_DISALLOWED = re.compile(r"[^a-z0-9._%+\-@]")
PHONE_DISALLOWED = re.compile(r"[^0-9+\-(). ]")
WHITESPACE_RUN = re.compile(r"\s+")
JAVASCRIPT_SCHEME = re.compile(r"javascript\s*:", re.IGNORECASE)

MAX_PASSES = 5


@dataclass(frozen=True)
class SanitizedValue:
    """Clean value plus the threats found in the raw value."""
    value: Any
    threats: tuple[ThreatType, ...] = field(default_factory=tuple)

    @property
    def is_clean(self) -> bool:
        return not self.threats


def _merge_threats(groups: Iterable[tuple[ThreatType, ...]]) -> tuple[ThreatType, ...]:
    """Union of threat tuples, first-seen order."""
    merged: list[ThreatType] = []
    for group in groups:
        merged.extend(t for t in group if t not in merged)
    return tuple(merged)


def iter_strings(value: Any) -> Iterator[str]:
    """Every string inside a value, including nested mapping keys."""
    if isinstance(value, str):
        yield value
    elif isinstance(value, dict):
        for key, item in value.items():
            yield from iter_strings(key)
            yield from iter_strings(item)
    elif isinstance(value, (list, tuple)):
        for item in value:
            yield from iter_strings(item)


class InputSanitizer:
    """
    Per-field cleansing with pattern-based threat detection.

    Nested values (mappings, lists) are walked and every string inside is
    screened and cleaned, mapping keys included.

    Args:
        field_types: Explicit field name -> type ("email", "phone", "text");
            unlisted fields are typed from their name
        max_text_length: Longest free-text value; exports truncate to it,
            ingest rejects anything longer (see `oversized_fields`)
    """

    def __init__(self, field_types: dict[str, str] | None = None, max_text_length: int = 1000):
        self.field_types = {k: v.lower() for k, v in (field_types or {}).items()}
        self.max_text_length = max_text_length

    def field_type(self, field_name: str) -> str:
        explicit = self.field_types.get(field_name)
        if explicit:
            return explicit
        lowered = field_name.lower()
        if "email" in lowered:
            return FIELD_TYPE_EMAIL
        if "phone" in lowered or "mobile" in lowered:
            return FIELD_TYPE_PHONE
        return FIELD_TYPE_TEXT

    @staticmethod
    def detect_threats(value: str) -> tuple[ThreatType, ...]:
        """Threat types whose pattern occurs anywhere in the value."""
        return tuple(
            threat for threat, pattern in THREAT_PATTERNS.items() if pattern.search(value)
        )

    def sanitize(self, field_name: str, raw_value: Any, inbound: bool = False) -> SanitizedValue:
        """
        Clean one value.

        Numbers, booleans and None carry no markup and pass through
        unchanged. Lists and tuples come back as lists with every element
        cleaned; mapping values are cleaned under their own key's type.

        Args:
            field_name: Field the value belongs to; selects the cleanser
            raw_value: Value as received or as stored
            inbound: Ingest direction; free text is never truncated

        Returns:
            SanitizedValue with the neutralized value and detected threats
        """
        if isinstance(raw_value, dict):
            return self._sanitize_mapping(raw_value, inbound)
        if isinstance(raw_value, (list, tuple)):
            results = [self.sanitize(field_name, item, inbound) for item in raw_value]
            return SanitizedValue([r.value for r in results], _merge_threats(r.threats for r in results))
        if not isinstance(raw_value, str):
            return SanitizedValue(raw_value)

        threats = self.detect_threats(raw_value)
        kind = self.field_type(field_name)

        if kind == FIELD_TYPE_EMAIL:
            clean = self._clean_email(raw_value)
        elif kind == FIELD_TYPE_PHONE:
            clean = self._clean_phone(raw_value)
        else:
            clean = self._clean_text(raw_value, truncate=not inbound)

        return SanitizedValue(self._neutralize(clean), threats)

    def _sanitize_mapping(self, mapping: dict, inbound: bool) -> SanitizedValue:
        clean: dict[Any, Any] = {}
        found: list[tuple[ThreatType, ...]] = []

        for key, value in mapping.items():
            if isinstance(key, str):
                found.append(self.detect_threats(key))
                clean_key: Any = self._neutralize(self._clean_text(key, truncate=False))
                result = self.sanitize(key, value, inbound)
            else:
                clean_key = key
                result = self.sanitize(str(key), value, inbound)
            clean[clean_key] = result.value
            found.append(result.threats)

        return SanitizedValue(clean, _merge_threats(found))

    def sanitize_record(
        self,
        record: dict[str, Any],
        fields: Iterable[str] | None = None,
        inbound: bool = False,
    ) -> tuple[dict[str, Any], dict[str, tuple[ThreatType, ...]]]:
        """
        Sanitize a record, optionally projecting it onto `fields`.

        Fields missing from the record come out as None so every projected
        row has the same columns.

        Returns:
            (clean record, field name -> threats for fields that had any)
        """
        names = list(fields) if fields is not None else list(record.keys())
        clean: dict[str, Any] = {}
        threats: dict[str, tuple[ThreatType, ...]] = {}

        for name in names:
            result = self.sanitize(name, record.get(name), inbound=inbound)
            clean[name] = result.value
            if result.threats:
                threats[name] = result.threats

        return clean, threats

    def oversized_fields(self, record: dict[str, Any]) -> list[str]:
        """Fields holding a string, at any depth, longer than max_text_length."""
        return [
            name for name, value in record.items()
            if any(len(s) > self.max_text_length for s in iter_strings(value))
        ]

    @staticmethod
    def _clean_email(value: str) -> str:
        return EMAIL_DISALLOWED.sub("", value.strip().lower())

    @staticmethod
    def _clean_phone(value: str) -> str:
        value = PHONE_DISALLOWED.sub("", value.strip())
        return WHITESPACE_RUN.sub(" ", value).strip()

    def _clean_text(self, value: str, truncate: bool = True) -> str:
        value = CONTROL_CHARS.sub("", value)
        value = SCRIPT_BLOCK.sub("", value)
        value = HTML_TAG.sub("", value).strip()
        return value[: self.max_text_length] if truncate else value

    def _neutralize(self, value: str) -> str:
        """
        Strip threat patterns until none match.

        Removing one match can splice together a new one ("..././"), so
        stripping repeats; a value that still matches after MAX_PASSES is
        dropped entirely.
        """
        for _ in range(MAX_PASSES):
            threats = self.detect_threats(value)
            if not threats:
                return value
            if ThreatType.SCRIPT_TAG in threats:
                value = SCRIPT_BLOCK.sub("", value)
                value = JAVASCRIPT_SCHEME.sub("", value)
                value = HTML_TAG.sub("", value)
            for threat in threats:
                value = THREAT_PATTERNS[threat].sub("", value)
            # A lone angle bracket can still open a tag in a downstream renderer
            value = value.replace("<", "").replace(">", "").strip()

        return "" if self.detect_threats(value) else value
