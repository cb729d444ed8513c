"""Client-side representations of the server's resources.

The server owns every entity; these dataclasses are read-mostly snapshots built
from response JSON with ``from_dict``. Identifiers are read from ``id`` with a
fallback to the server's ``_id``.
"""
import datetime
import enum
from dataclasses import dataclass, field
from decimal import Decimal, InvalidOperation
from typing import Any, Dict, List, Optional, Tuple

from ..settings.locale import parse_date


class ExpenseCategory(enum.StrEnum):
    Food = 'food'
    Accommodation = 'accommodation'
    Transport = 'transport'
    Entertainment = 'entertainment'
    Utilities = 'utilities'
    Other = 'other'


class GroupCategory(enum.StrEnum):
    Trip = 'trip'
    Household = 'household'
    Event = 'event'
    Other = 'other'


def _id_of(data: Any) -> str:
    """Return the identifier of a JSON object, or the value itself when it is a bare id."""
    if isinstance(data, dict):
        value = data.get('id', data.get('_id', ''))
        return str(value) if value is not None else ''
    return str(data) if data is not None else ''


def to_decimal(value: Any) -> Decimal:
    """Convert a JSON number or numeric string to Decimal.

    Raises:
        ValueError: If the value is not numeric.
    """
    if isinstance(value, bool):
        raise ValueError(f'Not a number: {value!r}')
    try:
        # str() avoids binary float artifacts, e.g. 12.1 -> Decimal('12.1')
        result = Decimal(str(value).strip())
    except (InvalidOperation, TypeError) as ex:
        raise ValueError(f'Not a number: {value!r}') from ex
    if not result.is_finite():
        raise ValueError(f'Not a finite number: {value!r}')
    return result


@dataclass(frozen=True)
class User:
    id: str
    name: str = ''
    email: str = ''

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'User':
        return cls(
            id=_id_of(data),
            name=data.get('name') or '',
            email=data.get('email') or '',
        )


@dataclass(frozen=True)
class Member:
    user: User

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'Member':
        # Server shape: {"userId": {"_id": ..., "name": ..., "email": ...}}
        user = data.get('userId', data)
        if not isinstance(user, dict):
            user = {'id': user}
        return cls(user=User.from_dict(user))


@dataclass(frozen=True)
class Group:
    id: str
    name: str
    description: str = ''
    category: str = GroupCategory.Other.value
    members: Tuple[Member, ...] = ()
    created_at: Optional[datetime.date] = None

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'Group':
        return cls(
            id=_id_of(data),
            name=data.get('name') or '',
            description=data.get('description') or '',
            category=data.get('category') or GroupCategory.Other.value,
            members=tuple(Member.from_dict(m) for m in data.get('members') or []),
            created_at=parse_date(data.get('createdAt')),
        )

    @property
    def member_ids(self) -> List[str]:
        return [m.user.id for m in self.members]


@dataclass(frozen=True)
class Expense:
    id: str
    description: str
    amount: Decimal
    category: str = ExpenseCategory.Other.value
    date: Optional[datetime.date] = None
    paid_by: Optional[User] = None
    participants: Tuple[str, ...] = ()

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'Expense':
        paid_by = data.get('paidBy')
        if paid_by is not None and not isinstance(paid_by, dict):
            paid_by = {'id': paid_by}
        return cls(
            id=_id_of(data),
            description=data.get('description') or '',
            amount=to_decimal(data.get('amount', 0)),
            category=data.get('category') or ExpenseCategory.Other.value,
            date=parse_date(data.get('date')),
            paid_by=User.from_dict(paid_by) if paid_by else None,
            participants=tuple(_id_of(p) for p in data.get('participants') or []),
        )


@dataclass(frozen=True)
class Settlement:
    id: str
    from_user: Optional[User]
    to_user: Optional[User]
    amount: Decimal
    settled: bool = False

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'Settlement':
        from_user = data.get('from')
        to_user = data.get('to')
        return cls(
            id=_id_of(data),
            from_user=User.from_dict(from_user) if isinstance(from_user, dict) else None,
            to_user=User.from_dict(to_user) if isinstance(to_user, dict) else None,
            amount=to_decimal(data.get('amount', 0)),
            settled=bool(data.get('settled', False)),
        )


@dataclass(frozen=True)
class Summary:
    total_expenses: Decimal = Decimal('0')
    total_unsettled: Decimal = Decimal('0')
    pending_settlements: int = 0

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'Summary':
        return cls(
            total_expenses=to_decimal(data.get('totalExpenses', 0)),
            total_unsettled=to_decimal(data.get('totalUnsettled', 0)),
            pending_settlements=int(data.get('pendingSettlements', 0)),
        )


@dataclass(frozen=True)
class GroupSnapshot:
    """One consistent view of a group: every field comes from the same fetch."""
    group: Group
    expenses: Tuple[Expense, ...] = field(default_factory=tuple)
    settlements: Tuple[Settlement, ...] = field(default_factory=tuple)
    summary: Optional[Summary] = None
