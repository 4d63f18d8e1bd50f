"""Leave kind classification.

Maps a requested leave token to everything the orchestrator needs to
persist it: entry type, payability, day fraction and ledger delta.

Quota rules:
- employee_paid consumes a full day (-1)
- a half day consumes half a day (-0.5) when its leave half is paid
- a second leave half consumes -0.5 only when it is employee_paid
- full system_paid days and unpaid kinds never touch the balance (0)
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal

from leave_ledger.calculators.types import HALF, ONE, ZERO, EntryType, LeaveKind
from leave_ledger.errors import HalfDayDisabled, IdenticalHalfDayKinds, UnsupportedLeaveKind

# Ledger entries written by the engine use this leave_type prefix.
ENGINE_LEDGER_PREFIX = "time_entry_leave"

_TOKEN_PREFIXES = ("time_entry_leave_", "usage_", "leave_", "policy_")

_UNPAID_ALIASES = {LeaveKind.HOLIDAY_UNPAID.value, LeaveKind.VACATION_UNPAID.value}

MIXED_SUBTYPES = ("holiday", "vacation")
DEFAULT_MIXED_SUBTYPE = "holiday"

# Kinds that can fill a whole day or a half of a split day.
FULL_DAY_KINDS = {
    LeaveKind.EMPLOYEE_PAID.value,
    LeaveKind.SYSTEM_PAID.value,
    LeaveKind.UNPAID.value,
    LeaveKind.HOLIDAY_UNPAID.value,
    LeaveKind.VACATION_UNPAID.value,
}

PAYABLE_KINDS = {
    LeaveKind.EMPLOYEE_PAID.value,
    LeaveKind.SYSTEM_PAID.value,
    LeaveKind.HALF_DAY.value,
}

_ENTRY_TYPE_BY_BASE = {
    LeaveKind.EMPLOYEE_PAID.value: EntryType.LEAVE_EMPLOYEE_PAID,
    LeaveKind.SYSTEM_PAID.value: EntryType.LEAVE_SYSTEM_PAID,
    LeaveKind.UNPAID.value: EntryType.LEAVE_UNPAID,
    LeaveKind.HALF_DAY.value: EntryType.LEAVE_HALF_DAY,
}

_LEGACY_ENTRY_TYPES = {
    "paid_leave": LeaveKind.SYSTEM_PAID.value,
    "leave": LeaveKind.UNPAID.value,
}


@dataclass(frozen=True)
class LeaveClassification:
    """Resolved leave request (or one half of a split day)."""

    kind: str  # resolved token, keeps holiday_/vacation_ variants
    base_kind: str
    entry_type: EntryType
    payable: bool
    fraction: Decimal
    ledger_delta: Decimal
    ledger_type: str
    primary_kind: str | None = None
    subtype: str | None = None
    mixed_paid: bool | None = None

    @property
    def is_half_day(self) -> bool:
        return self.base_kind == LeaveKind.HALF_DAY.value


def normalize_leave_token(value: str | None) -> str | None:
    """Lower-case a leave token and strip storage prefixes."""
    if not value or not isinstance(value, str):
        return None
    token = value.strip().lower()
    for prefix in _TOKEN_PREFIXES:
        if token.startswith(prefix):
            token = token[len(prefix):]
            break
    return token or None


def get_leave_base_kind(value: str | None) -> str | None:
    """Collapse unpaid variants to ``unpaid``; None for unknown tokens."""
    token = normalize_leave_token(value)
    if token is None:
        return None
    if token in _UNPAID_ALIASES:
        return LeaveKind.UNPAID.value
    if token in FULL_DAY_KINDS or token in (LeaveKind.HALF_DAY.value, LeaveKind.MIXED.value):
        return token
    return None


def is_payable_leave_kind(value: str | None) -> bool:
    return get_leave_base_kind(value) in PAYABLE_KINDS


def leave_kind_from_entry_type(entry_type: str | EntryType | None) -> str | None:
    """Map a persisted entry type (including legacy ones) to its leave kind."""
    if entry_type is None:
        return None
    raw = entry_type.value if isinstance(entry_type, EntryType) else str(entry_type)
    if raw in _LEGACY_ENTRY_TYPES:
        return _LEGACY_ENTRY_TYPES[raw]
    if not raw.startswith("leave_"):
        return None
    return get_leave_base_kind(raw)


def entry_type_for_leave_kind(value: str) -> EntryType:
    base = get_leave_base_kind(value)
    if base is None or base not in _ENTRY_TYPE_BY_BASE:
        raise UnsupportedLeaveKind(details={"leave_type": value})
    return _ENTRY_TYPE_BY_BASE[base]


def ledger_type_for_kind(kind: str) -> str:
    return f"{ENGINE_LEDGER_PREFIX}_{kind}"


def _full_day(token: str, fraction: Decimal = ONE, **extra) -> LeaveClassification:
    base = get_leave_base_kind(token)
    consumes = base == LeaveKind.EMPLOYEE_PAID.value
    return LeaveClassification(
        kind=token,
        base_kind=base,
        entry_type=_ENTRY_TYPE_BY_BASE[base],
        payable=base in PAYABLE_KINDS,
        fraction=fraction,
        ledger_delta=-fraction if consumes else ZERO,
        ledger_type=ledger_type_for_kind(base),
        **extra,
    )


def _half_day(primary_kind: str, **extra) -> LeaveClassification:
    primary_base = get_leave_base_kind(primary_kind)
    # Every paid half draws half a day from the balance, system paid included.
    payable = primary_base in PAYABLE_KINDS
    return LeaveClassification(
        kind=LeaveKind.HALF_DAY.value,
        base_kind=LeaveKind.HALF_DAY.value,
        entry_type=EntryType.LEAVE_HALF_DAY,
        payable=payable,
        fraction=HALF,
        ledger_delta=-HALF if payable else ZERO,
        ledger_type=ledger_type_for_kind(LeaveKind.HALF_DAY.value),
        primary_kind=primary_kind,
        **extra,
    )


def resolve_mixed_kind(paid: bool, subtype: str | None) -> tuple[str, str]:
    """Resolve a mixed request into (kind, subtype)."""
    resolved_subtype = subtype if subtype in MIXED_SUBTYPES else DEFAULT_MIXED_SUBTYPE
    if paid:
        kind = LeaveKind.SYSTEM_PAID if resolved_subtype == "holiday" else LeaveKind.EMPLOYEE_PAID
    else:
        kind = LeaveKind.HOLIDAY_UNPAID if resolved_subtype == "holiday" else LeaveKind.VACATION_UNPAID
    return kind.value, resolved_subtype


def classify_leave(
    leave_type: str | None,
    *,
    allow_half_day: bool,
    mixed_paid: bool | None = None,
    mixed_subtype: str | None = None,
    mixed_half_day: bool = False,
    primary_half_kind: str | None = None,
) -> LeaveClassification:
    """Classify a requested leave day.

    Args:
        leave_type: Requested token (employee_paid, system_paid, unpaid
            variants, half_day or mixed); storage prefixes are tolerated.
        allow_half_day: Org policy switch for half-day leave.
        mixed_paid: For ``mixed``, whether the day is paid (default True).
        mixed_subtype: For ``mixed``, ``holiday`` or ``vacation``.
        mixed_half_day: For paid ``mixed``, record only half a day.
        primary_half_kind: For ``half_day``, the kind of the leave half
            (default employee_paid).

    Raises:
        UnsupportedLeaveKind: Unknown token.
        HalfDayDisabled: A half day was requested but the policy forbids it.
    """
    token = normalize_leave_token(leave_type)
    base = get_leave_base_kind(token)
    if base is None:
        raise UnsupportedLeaveKind(details={"leave_type": leave_type})

    if base == LeaveKind.MIXED.value:
        paid = True if mixed_paid is None else bool(mixed_paid)
        kind, subtype = resolve_mixed_kind(paid, mixed_subtype)
        if paid and mixed_half_day:
            if not allow_half_day:
                raise HalfDayDisabled()
            return _half_day(kind, subtype=subtype, mixed_paid=paid)
        return _full_day(kind, subtype=subtype, mixed_paid=paid)

    if base == LeaveKind.HALF_DAY.value:
        if not allow_half_day:
            raise HalfDayDisabled()
        primary = normalize_leave_token(primary_half_kind) or LeaveKind.EMPLOYEE_PAID.value
        if primary not in FULL_DAY_KINDS:
            raise UnsupportedLeaveKind(
                "Half-day leave must use a full-day leave kind for its leave half",
                details={"primary_half_kind": primary_half_kind},
            )
        return _half_day(primary)

    return _full_day(token)


def classify_second_half(leave_type: str | None, primary: LeaveClassification) -> LeaveClassification:
    """Classify the leave kind of the second half of a split day.

    Raises:
        UnsupportedLeaveKind: The second half must be a full-day kind.
        IdenticalHalfDayKinds: Both halves resolve to the same base kind.
    """
    token = normalize_leave_token(leave_type)
    if token not in FULL_DAY_KINDS:
        raise UnsupportedLeaveKind(
            "The second half of the day must use a full-day leave kind",
            details={"leave_type": leave_type},
        )
    primary_base = get_leave_base_kind(primary.primary_kind or primary.kind)
    if get_leave_base_kind(token) == primary_base:
        raise IdenticalHalfDayKinds(details={"primary": primary_base, "second": token})
    return _full_day(token, fraction=HALF)
