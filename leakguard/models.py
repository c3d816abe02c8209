"""Result records returned by checkers and the aggregator.

All records are plain dataclasses that round-trip through JSON-compatible
dicts so they can be stored as cache payloads.
"""

from dataclasses import asdict, dataclass, field
from typing import Any, Dict, List, Optional


@dataclass(frozen=True)
class Breach:
    """A data-exposure incident associated with a named service."""

    name: str
    domain: Optional[str] = None
    date: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Breach":
        return cls(
            name=str(data.get("name", "")),
            domain=data.get("domain") or None,
            date=data.get("date") or None,
        )


@dataclass(frozen=True)
class PasswordCheckResult:
    """Outcome of a password exposure check.

    ``found=False`` with populated composition counts is a locally computed
    fallback; ``found=True`` is a confirmed remote match.
    """

    found: bool = False
    count: int = 0
    digits: int = 0
    alphabets: int = 0
    special_chars: int = 0
    length: int = 0

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "PasswordCheckResult":
        return cls(
            found=bool(data.get("found", False)),
            count=int(data.get("count", 0) or 0),
            digits=int(data.get("digits", 0) or 0),
            alphabets=int(data.get("alphabets", 0) or 0),
            special_chars=int(data.get("special_chars", 0) or 0),
            length=int(data.get("length", 0) or 0),
        )


@dataclass(frozen=True)
class BreachDetails:
    breach: str = ""
    xposed_date: str = ""
    domain: str = ""
    industry: str = ""
    xposed_data: str = ""
    details: str = ""
    references: str = ""
    password_risk: str = ""

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "BreachDetails":
        return cls(**{
            name: "" if data.get(name) is None else str(data.get(name))
            for name in cls.__dataclass_fields__
        })


@dataclass(frozen=True)
class IndustryCount:
    name: str
    count: int


@dataclass(frozen=True)
class PasswordStrength:
    plain_text: int = 0
    strong_hash: int = 0
    unknown: int = 0


@dataclass(frozen=True)
class Risk:
    label: str = "Unknown"
    score: int = 0


@dataclass(frozen=True)
class ExposedItem:
    name: str
    value: int


@dataclass(frozen=True)
class ExposedCategory:
    category: str
    items: List[ExposedItem] = field(default_factory=list)


@dataclass(frozen=True)
class YearCount:
    year: str
    count: int


@dataclass(frozen=True)
class Analytics:
    """Aggregated breach metadata for one email.

    Every field defaults to its empty value so "no data" never needs a null.
    """

    breaches: List[str] = field(default_factory=list)
    breaches_details: List[BreachDetails] = field(default_factory=list)
    industries: List[IndustryCount] = field(default_factory=list)
    password_strength: PasswordStrength = field(default_factory=PasswordStrength)
    risk: Risk = field(default_factory=Risk)
    exposed_data: List[ExposedCategory] = field(default_factory=list)
    years: List[YearCount] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Analytics":
        strength = data.get("password_strength") or {}
        risk = data.get("risk") or {}
        return cls(
            breaches=[str(b) for b in data.get("breaches") or []],
            breaches_details=[
                BreachDetails.from_dict(d) for d in data.get("breaches_details") or []
            ],
            industries=[
                IndustryCount(name=i["name"], count=int(i["count"]))
                for i in data.get("industries") or []
            ],
            password_strength=PasswordStrength(
                plain_text=int(strength.get("plain_text", 0)),
                strong_hash=int(strength.get("strong_hash", 0)),
                unknown=int(strength.get("unknown", 0)),
            ),
            risk=Risk(
                label=str(risk.get("label", "Unknown")),
                score=int(risk.get("score", 0)),
            ),
            exposed_data=[
                ExposedCategory(
                    category=c["category"],
                    items=[ExposedItem(name=i["name"], value=int(i["value"]))
                           for i in c.get("items") or []],
                )
                for c in data.get("exposed_data") or []
            ],
            years=[YearCount(year=str(y["year"]), count=int(y["count"]))
                   for y in data.get("years") or []],
        )


# Report statuses for an email check
STATUS_CACHED = "cached"
STATUS_OK = "ok"
STATUS_PARTIAL = "partial"
STATUS_UNAVAILABLE = "unavailable"


@dataclass
class EmailReport:
    """Breaches for one email plus which sources contributed.

    ``status`` separates "no breaches" (``ok`` with an empty list) from
    "every source failed" (``unavailable``).
    """

    email: str
    breaches: List[Breach] = field(default_factory=list)
    succeeded: List[str] = field(default_factory=list)
    failed: Dict[str, str] = field(default_factory=dict)
    from_cache: bool = False

    @property
    def status(self) -> str:
        if self.from_cache:
            return STATUS_CACHED
        if self.failed and not self.succeeded:
            return STATUS_UNAVAILABLE
        if self.failed:
            return STATUS_PARTIAL
        return STATUS_OK

    def to_dict(self) -> Dict[str, Any]:
        return {
            "email": self.email,
            "status": self.status,
            "breaches": [b.to_dict() for b in self.breaches],
            "succeeded": list(self.succeeded),
            "failed": dict(self.failed),
        }
